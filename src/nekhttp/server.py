"""
=============================================================================
HTTP SERVER
=============================================================================

The orchestrator: owns the Connection, the Router and the background
thread that runs the accept loop.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         HTTPServer                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   main thread                    background thread                   │
    │   ───────────                    ─────────────────                   │
    │   server.get("/", index)                                             │
    │   server.listen() ─── start ───► bind_and_listen()                   │
    │        │ (returns once bound)         │                              │
    │        ▼                              ▼                              │
    │   ...carries on...               ┌─► accept()  (select, no spin)     │
    │                                  │    │                              │
    │                                  │    ▼                              │
    │                                  │  receive() → RequestParser.feed() │
    │                                  │    │   until DONE / INVALID       │
    │                                  │    ▼                              │
    │                                  │  Router.dispatch(req, resp)       │
    │                                  │    │                              │
    │                                  │    ▼                              │
    │                                  └── release_peer()                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One connection at a time: a peer is accepted, its request is read and
answered, the peer is released, and only then is the next one accepted.

=============================================================================
FAILURE HANDLING
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │  What went wrong             │  What happens                        │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │  bind / listen / accept      │  logged, background thread exits     │
    │  malformed request           │  400 (or 413 / 431), next peer       │
    │  peer silent mid-request     │  408 Request Timeout, next peer      │
    │  request_timeout exceeded    │  408 Request Timeout, next peer      │
    │  peer closed early           │  nothing sent, next peer             │
    │  recv / send failed          │  logged, next peer                   │
    │  handler raised              │  logged, 500 if nothing sent yet     │
    │  any other error for a peer  │  logged, 500 if nothing sent yet     │
    │  no route matched            │  404 Not Found                       │
    └──────────────────────────────┴──────────────────────────────────────┘
=============================================================================
"""

import html
import logging
import threading
import time
from typing import Optional

from .config import ServerConfig
from .core import Connection
from .errors import LogicError, ReceiveError, SendError, ServerError
from .http import (
    Handler,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    ParseState,
    RequestParser,
    Router,
    StatusTable,
)


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Single-threaded HTTP/1.1 server running in a background thread.

    Usage:
        server = HTTPServer(ServerConfig(port=3000))

        @server.get("/")
        def index(request, response):
            response.send("<h1>Hello</h1>")

        server.listen()      # returns immediately, serving in background
        ...
        server.shutdown()
        server.wait()

    Or, from a CLI, server.run() which blocks until Ctrl+C.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        status_table: Optional[StatusTable] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on bad settings

        self._router = Router()
        self._status_table = status_table if status_table is not None else StatusTable.default()

        # Runtime state, (re)created by listen()
        self._connection: Optional[Connection] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._stop = threading.Event()
        self._running = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    @property
    def status_table(self) -> StatusTable:
        return self._status_table

    @property
    def is_running(self) -> bool:
        """True while the background thread is listening."""
        return self._running

    @property
    def port(self) -> int:
        """The bound port once listening (useful with port 0), else the configured one."""
        if self._connection is not None and self._connection.is_listening:
            return self._connection.port
        return self.config.port

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def register(self, method: str, path: str, handler: Handler) -> "HTTPServer":
        self._router.register(method, path, handler)
        return self

    def route(self, method: str, path: str):
        return self._router.route(method, path)

    def get(self, path: str):
        return self._router.get(path)

    def post(self, path: str):
        return self._router.post(path)

    def put(self, path: str):
        return self._router.put(path)

    def delete(self, path: str):
        return self._router.delete(path)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def listen(self, port: Optional[int] = None, timeout: float = 5.0) -> "HTTPServer":
        """
        Start serving in a background thread.

        Returns once the socket is listening, or once setup failed (the
        failure is logged and is_running stays False).

        Args:
            port: Override the configured port.
            timeout: Seconds to wait for the socket to be ready.

        Raises:
            LogicError: If the server is already running.
        """
        if self._thread is not None and self._thread.is_alive():
            raise LogicError("server is already running")

        if port is not None:
            self.config.port = port
            self.config.validate()

        self._ready.clear()
        self._stop.clear()
        self._connection = Connection(
            port=self.config.port,
            host=self.config.host,
            backlog=self.config.backlog,
            receive_timeout=self.config.receive_timeout,
        )

        self._thread = threading.Thread(
            target=self._serve,
            name="nekhttp-accept-loop",
            daemon=True,
        )
        self._thread.start()
        self._ready.wait(timeout)
        return self

    def run(self, port: Optional[int] = None) -> bool:
        """
        Configure logging, start serving and block until Ctrl+C or until
        the background thread stops.

        Returns:
            False if the server never started listening (the cause is
            logged), True once it has served and shut down.
        """
        self._setup_logging()
        self.listen(port)

        if not self.is_running:
            self.wait()
            return False

        try:
            while self._thread is not None and self._thread.is_alive():
                # join() with a timeout keeps the main thread responsive to Ctrl+C
                self._thread.join(0.5)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.shutdown()
            self.wait()

        return True

    def shutdown(self) -> None:
        """Ask the accept loop to stop. Idempotent."""
        self._stop.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the background thread to exit.

        Returns:
            True if it has exited, False if the timeout elapsed first.
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("nekhttp").setLevel(level)

    # =========================================================================
    # ACCEPT LOOP (background thread)
    # =========================================================================

    def _serve(self) -> None:
        conn = self._connection

        try:
            conn.bind_and_listen()
            self._running = True
            self._ready.set()
            logger.info(
                f"{self.config.server_name} listening on "
                f"http://{self.config.host}:{conn.port}"
            )

            while not self._stop.is_set():
                if conn.accept(timeout=self.config.poll_interval) is None:
                    continue  # Nobody came; re-check the stop flag

                try:
                    self._handle_peer(conn)
                finally:
                    conn.release_peer()

        except ServerError as e:
            # Setup or accept failure: there is no socket left to serve from
            logger.exception(f"Server stopped: {e}")
        except Exception:
            logger.exception("Server stopped by unexpected error")
        finally:
            self._running = False
            conn.close()
            self._ready.set()  # Unblock listen() if setup failed
            logger.info("Server stopped")

    def _handle_peer(self, conn: Connection) -> None:
        """Read one request from the current peer and answer it."""
        address = conn.peer_address or ("?", 0)
        parser = RequestParser(
            max_header_size=self.config.max_header_size,
            max_body_size=self.config.max_body_size,
        )

        try:
            state = self._read_request(conn, parser)

            if state is ParseState.INVALID:
                error = parser.error
                logger.warning(f"Bad request from {address[0]}: {error}")
                self._send_error(conn, error.status_code, str(error))
                return

            if state is not ParseState.DONE:
                logger.debug(f"{address[0]} closed the connection before a full request")
                return

            self._respond(conn, parser.request)

        except TimeoutError:
            if parser.has_started:
                logger.warning(f"Timed out reading request from {address[0]}")
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timed out")
            else:
                logger.debug(f"{address[0]} connected but sent nothing")

        except (ReceiveError, SendError) as e:
            logger.warning(f"Connection error with {address[0]}: {e}")

        except Exception:
            # Only setup and accept failures end the accept loop
            logger.exception(f"Unexpected error serving {address[0]}")
            if parser.state is not ParseState.DONE:
                # Never dispatched, so nothing was sent yet
                self._send_error(
                    conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error"
                )

    def _read_request(self, conn: Connection, parser: RequestParser) -> ParseState:
        """
        Feed received bytes to the parser until it stops or the peer leaves.

        receive_timeout bounds each silence; request_timeout bounds the
        whole request, so a peer trickling one byte at a time still gets
        TimeoutError once its time is up.
        """
        deadline = time.monotonic() + self.config.request_timeout

        while not parser.state.is_terminal:
            remaining = deadline - time.monotonic()
            data = conn.receive(self.config.buffer_size, timeout=remaining)
            if not data:
                break  # EOF
            parser.feed(data)
        return parser.state

    def _respond(self, conn: Connection, request: HTTPRequest) -> None:
        response = HTTPResponse(conn, request, self._status_table)

        try:
            self._router.dispatch(request, response)
            if not response.sent:
                # Handlers matched but none sent; finish with what they set
                response.send()
        except SendError:
            raise
        except Exception:
            logger.exception(f"Handler error for {request.method} {request.path}")
            if not response.sent:
                response = HTTPResponse(conn, request, self._status_table)
                response.set_status(HTTPStatus.INTERNAL_SERVER_ERROR)
                response.send("<h1>500 Internal Server Error</h1>")

        logger.info(f"{request.method} {request.original_target} -> {response.status}")

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """
        Send an error response for a request that never reached a handler.

        The connection is closed right after, so Connection: close is sent.
        """
        response = HTTPResponse(conn, None, self._status_table)
        response.set_status(status).set_header("Connection", "close")

        try:
            response.send(
                f"<h1>{response.status} {html.escape(response.status_message)}</h1>"
                f"<p>{html.escape(message)}</p>"
            )
        except SendError as e:
            logger.warning(f"Could not send {status} response: {e}")
