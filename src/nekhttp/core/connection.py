"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module owns the server's TCP endpoint: one listening socket and at
most one accepted peer at a time.

=============================================================================
TWO SOCKETS, TWO LIFETIMES
=============================================================================

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── Created once by bind_and_listen()
    │   0.0.0.0:3000        │     Never sends or receives data
    └───────────┬───────────┘     Released by close()
                │
                │ accept()
                ▼
    ┌───────────────────────┐
    │     Peer Socket       │ ◄── One per request/response cycle
    │  (the current client) │     Released by release_peer()
    └───────────────────────┘

Operations that need the peer (receive, send) raise LogicError when none
is held. Operations that need the listening socket (accept) raise
LogicError when bind_and_listen() was never called.

=============================================================================
WAITING WITHOUT SPINNING
=============================================================================

The listening socket is non-blocking. Instead of calling accept() in a
tight loop and retrying on EAGAIN, we ask the kernel to wake us up when a
connection is ready:

    select([listener], [], [], timeout)
        │
        ├── readable → accept() (retry quietly if another wakeup raced us)
        └── timeout  → return None so the caller can check for shutdown

The peer socket is blocking with a receive timeout. A client that
connects and then goes silent produces a TimeoutError instead of hanging
the accept loop forever.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

receive() returns whatever the kernel has, which may be half a request
line or three requests glued together. Reassembly is the parser's job;
this module only moves bytes.
=============================================================================
"""

import logging
import select
import socket
import time
from typing import Optional

from ..errors import (
    AcceptError,
    BindError,
    ListenError,
    LogicError,
    ReceiveError,
    SendError,
)


logger = logging.getLogger(__name__)


class Connection:
    """
    A listening TCP endpoint plus the currently accepted peer.

    Usage:
        conn = Connection(3000)
        conn.bind_and_listen()
        while True:
            if conn.accept(timeout=0.5) is None:
                continue
            data = conn.receive(4096)
            conn.send(b"HTTP/1.1 200 OK\\r\\n\\r\\n")
            conn.release_peer()

    Attributes:
        host: Address to bind ("0.0.0.0" = all IPv4 interfaces).
        backlog: Kernel accept-queue length.
        receive_timeout: Seconds receive() waits before TimeoutError.
                         None blocks forever.
    """

    def __init__(
        self,
        port: int,
        host: str = "0.0.0.0",
        backlog: int = 5,
        receive_timeout: Optional[float] = None,
    ):
        self.host = host
        self.backlog = backlog
        self.receive_timeout = receive_timeout
        self._port = port

        # Created lazily; None means "not there yet" or "released"
        self._listener: Optional[socket.socket] = None
        self._peer: Optional[socket.socket] = None
        self._peer_address: Optional[tuple[str, int]] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def port(self) -> int:
        """
        The port we listen on.

        After bind_and_listen() this is the port the OS actually assigned,
        which differs from the requested one when port 0 was requested.
        """
        if self._listener is not None:
            return self._listener.getsockname()[1]
        return self._port

    @property
    def is_listening(self) -> bool:
        return self._listener is not None

    @property
    def has_peer(self) -> bool:
        return self._peer is not None

    @property
    def peer_address(self) -> Optional[tuple[str, int]]:
        """(ip, port) of the accepted peer, or None."""
        return self._peer_address

    # =========================================================================
    # LISTENING
    # =========================================================================

    def bind_and_listen(self) -> None:
        """
        Create the listening socket, bind it and start listening.

        Raises:
            LogicError: If already listening.
            BindError: Address in use, permission denied, bad address.
            ListenError: listen() failed.
        """
        if self._listener is not None:
            raise LogicError("socket is already listening")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Without SO_REUSEADDR a restart within ~60s fails with
        # "Address already in use" while the old socket sits in TIME_WAIT.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            sock.bind((self.host, self._port))
        except OSError as e:
            sock.close()
            raise BindError.from_os_error(e) from e

        try:
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            raise ListenError.from_os_error(e) from e

        sock.setblocking(False)
        self._listener = sock
        logger.debug(f"Listening on {self.host}:{self.port}")

    # =========================================================================
    # ACCEPTING
    # =========================================================================

    def accept(self, timeout: Optional[float] = None) -> Optional[tuple[str, int]]:
        """
        Wait for a peer and accept it.

        Any peer still held from a previous cycle is released first, so no
        state leaks from one client to the next.

        Args:
            timeout: Seconds to wait. None waits until a peer arrives.

        Returns:
            The peer's (ip, port), or None if the timeout elapsed.

        Raises:
            LogicError: If bind_and_listen() was never called.
            AcceptError: On any OS error other than "would block".
        """
        if self._listener is None:
            raise LogicError("socket is not created")

        if self._peer is not None:
            self.release_peer()

        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())

            try:
                readable, _, _ = select.select([self._listener], [], [], remaining)
            except OSError as e:
                raise AcceptError.from_os_error(e) from e

            if not readable:
                return None

            try:
                peer, address = self._listener.accept()
            except BlockingIOError:
                # The connection went away between select() and accept()
                continue
            except OSError as e:
                raise AcceptError.from_os_error(e) from e

            # Whether accept() inherits non-blocking mode is OS-dependent
            peer.setblocking(True)
            peer.settimeout(self.receive_timeout)

            self._peer = peer
            self._peer_address = address
            logger.debug(f"Accepted connection from {address[0]}:{address[1]}")
            return address

    # =========================================================================
    # I/O
    # =========================================================================

    def receive(self, size: int, timeout: Optional[float] = None) -> bytes:
        """
        Read up to `size` bytes from the peer.

        Args:
            size: Maximum number of bytes to read.
            timeout: Seconds to wait for this read only, capped at
                     receive_timeout. None uses receive_timeout.

        Returns:
            The bytes read. b"" means the peer closed its side (EOF).

        Raises:
            LogicError: No peer accepted.
            TimeoutError: Nothing arrived in time.
            ReceiveError: Any other OS error (e.g. connection reset).
        """
        if self._peer is None:
            raise LogicError("socket is not accepted")

        wait = self.receive_timeout
        if timeout is not None:
            if timeout <= 0:
                raise TimeoutError("timed out waiting for request data")
            wait = timeout if wait is None else min(wait, timeout)

        try:
            self._peer.settimeout(wait)
            return self._peer.recv(size)
        except socket.timeout:
            raise TimeoutError("timed out waiting for request data") from None
        except OSError as e:
            raise ReceiveError.from_os_error(e) from e

    def send(self, data: bytes) -> None:
        """
        Write all of `data` to the peer.

        sendall() loops internally until every byte is written, so a
        partially filled kernel buffer never truncates a response.

        Raises:
            LogicError: No peer accepted.
            SendError: The write failed (peer gone, broken pipe, ...).
        """
        if self._peer is None:
            raise LogicError("socket is not accepted")

        try:
            self._peer.sendall(data)
        except OSError as e:
            raise SendError.from_os_error(e) from e

    # =========================================================================
    # CLOSING
    # =========================================================================

    def release_peer(self) -> None:
        """
        Close the accepted peer socket, if any.

        Sequence:
            1. shutdown(SHUT_WR)   send FIN, we are done writing
            2. drain               discard unread bytes without blocking,
                                   so close() does not answer with RST
            3. close()             release the file descriptor
        """
        peer, self._peer = self._peer, None
        address, self._peer_address = self._peer_address, None
        if peer is None:
            return

        try:
            peer.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            peer.setblocking(False)
            while peer.recv(4096):
                pass
        except OSError:
            pass  # Nothing left to read (BlockingIOError) or peer gone

        try:
            peer.close()
        except OSError:
            pass

        if address is not None:
            logger.debug(f"Released connection from {address[0]}:{address[1]}")

    def close(self) -> None:
        """Release the peer and the listening socket. Safe to call twice."""
        self.release_peer()

        listener, self._listener = self._listener, None
        if listener is not None:
            try:
                listener.close()
            except OSError:
                pass
            logger.debug("Listening socket closed")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
