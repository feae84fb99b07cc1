"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

An HTTPResponse is handed to route handlers, which set headers and status
on it and finally call send(). send() renders the response and writes it
to the connection in one go.

=============================================================================
WIRE FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK\\r\\n              ← protocol/version from request   │
    │  x-request-id: 42\\r\\n             ← handler headers, in set order   │
    │  Content-Length: 13\\r\\n           ┐ only when the body is           │
    │  Content-Type: text/html\\r\\n      ┘ not empty                       │
    │  Connection: Keep-Alive\\r\\n                                         │
    │  \\r\\n                             ← end of headers                  │
    │  <h1>Hi!</h1>                     ← body                             │
    └─────────────────────────────────────────────────────────────────────┘

Header names are stored lower-cased, so set_header("X-A", ...) and
get_header("x-a") refer to the same header.

=============================================================================
SEND EXACTLY ONCE
=============================================================================

Several handlers may share one response. The first send() wins; the
response is then spent and any further send() or mutation raises
LogicError instead of writing a second, corrupting status line onto the
socket.
=============================================================================
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Union

from ..errors import LogicError
from .request import HTTPRequest
from .status_codes import HTTPStatus, StatusTable


DEFAULT_CONTENT_TYPE = "text/html"


class HTTPResponse:
    """
    A response bound to one request and one connection.

    Usage (inside a handler):
        def show_user(request, response):
            response.set_status(404).set_header("X-Reason", "gone")
            response.send("<p>No such user</p>")

    Args:
        connection: Anything with send(bytes), normally core.Connection.
        request: The request being answered. None for errors raised before
                 a request could be parsed; HTTP/1.1 is used then.
        status_table: Reason phrases for the status line.
    """

    def __init__(
        self,
        connection,
        request: Optional[HTTPRequest] = None,
        status_table: Optional[StatusTable] = None,
    ):
        self._connection = connection
        self._request = request
        self._status_table = status_table if status_table is not None else StatusTable.default()

        self._status = int(HTTPStatus.OK)
        self._status_message: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._sent = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def request(self) -> Optional[HTTPRequest]:
        return self._request

    @property
    def status(self) -> int:
        return self._status

    @property
    def status_message(self) -> str:
        """The override if one was set, else the table's phrase ("" if unknown)."""
        if self._status_message is not None:
            return self._status_message
        return self._status_table.phrase(self._status)

    @property
    def headers(self) -> Mapping[str, str]:
        return MappingProxyType(self._headers)

    @property
    def sent(self) -> bool:
        return self._sent

    @property
    def status_line(self) -> str:
        protocol, version = "HTTP", "1.1"
        if self._request is not None:
            protocol = self._request.protocol or protocol
            version = self._request.http_version or version
        return f"{protocol}/{version} {self._status} {self.status_message}"

    # =========================================================================
    # MUTATORS (chainable)
    # =========================================================================

    def _check_not_sent(self) -> None:
        if self._sent:
            raise LogicError("response has already been sent")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a header, replacing any previous value.

        Raises:
            ValueError: Empty name, or CR/LF in name or value (a value like
                        "x\\r\\nSet-Cookie: evil" would inject a header).
        """
        self._check_not_sent()
        value = str(value)
        if not name or ":" in name or any(c in name for c in "\r\n \t"):
            raise ValueError(f"Invalid header name: {name!r}")
        if "\r" in value or "\n" in value:
            raise ValueError(f"Invalid header value for {name}: {value!r}")

        self._headers[name.lower()] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._headers.get(name.lower(), default)

    def set_status(self, code: int) -> "HTTPResponse":
        self._check_not_sent()
        code = int(code)
        if not 100 <= code <= 999:
            raise ValueError(f"Invalid status code: {code}")
        self._status = code
        return self

    def set_status_message(self, message: str) -> "HTTPResponse":
        self._check_not_sent()
        if "\r" in message or "\n" in message:
            raise ValueError(f"Invalid status message: {message!r}")
        self._status_message = message
        return self

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def render(self, body: Union[str, bytes] = b"") -> bytes:
        """
        Build the exact bytes send() would write, without writing them.

        A handler-set content-length is ignored; the length is always
        computed from the body.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        lines = [self.status_line]

        for name, value in self._headers.items():
            if name == "content-length":
                continue
            lines.append(f"{name}: {value}")

        if body:
            lines.append(f"Content-Length: {len(body)}")
            if "content-type" not in self._headers:
                lines.append(f"Content-Type: {DEFAULT_CONTENT_TYPE}")

        if "connection" not in self._headers:
            lines.append("Connection: Keep-Alive")

        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("utf-8") + body

    def send(self, body: Union[str, bytes] = b"") -> None:
        """
        Render the response and write it to the connection. Terminal.

        Raises:
            LogicError: If this response was already sent.
            SendError: If the connection write failed.
        """
        self._check_not_sent()
        data = self.render(body)

        # Spent even if the write fails: half a response may be on the wire
        self._sent = True
        self._connection.send(data)
