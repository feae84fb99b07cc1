"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes a client sends into an immutable HTTPRequest.

The parser is a byte-driven STATE MACHINE. It consumes one byte at a time,
so it does not care how TCP chopped the request up:

    recv() → b"GET /he"          feed() → state PATH
    recv() → b"llo HTTP/1.1\\r"   feed() → state CR
    recv() → b"\\n\\r\\n"           feed() → state DONE

All progress (current state, half-built fields, the header being read)
lives in the parser object between feed() calls. One RequestParser is
created per connection and thrown away afterwards, so nothing leaks from
one client to the next.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /foo?x=1 HTTP/1.1\\r\\n        ← request line                   │
    │  ─┬─ ─┬── ─┬─ ─┬── ─┬─                                              │
    │   │   │    │   │    └── http_version                                │
    │   │   │    │   └─────── protocol                                    │
    │   │   │    └─────────── query (kept only inside original_target)    │
    │   │   └──────────────── path                                        │
    │   └──────────────────── method                                      │
    │                                                                      │
    │  Host: localhost:3000\\r\\n         ← headers, name lower-cased       │
    │  Content-Length: 5\\r\\n                                              │
    │  \\r\\n                             ← header terminator               │
    │  hello                            ← exactly Content-Length bytes     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STATE MACHINE
=============================================================================

    METHOD ──SP──► PATH ──SP──────────────► PROTOCOL ──'/'──► HTTP_VERSION
                     │                         ▲                   │
                     └──'?'──► QUERY ──SP──────┘                   CR
                                                                   ▼
         ┌──────────────────────────────────────────────────────► CR
         │                                                         │ LF
         │ CR                                                      ▼
    HEADER_VALUE ◄──':'── HEADER_KEY ◄──other── CRLF ──CR──► CRLFCR
                                                                   │ LF
                                              Content-Length > 0?  │
                                             ┌──── yes ────────────┤
                                             ▼                     no
                                           BODY ──len reached──► DONE

    Any unexpected byte at a line boundary → INVALID.
    DONE and INVALID are terminal: further bytes are ignored.

=============================================================================
BODY FRAMING
=============================================================================

Without a length the parser could never tell where the body ends, so the
body is bounded by the declared Content-Length:

    no Content-Length / 0     → DONE right after the blank line
    Content-Length: N         → BODY until exactly N bytes arrived
    Content-Length: abc / -1  → INVALID (400)
    N > max_body_size         → INVALID (413), also for digit
                                strings too long to convert

Bytes beyond N in the same read are ignored (no pipelining).
=============================================================================
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from ..errors import LogicError, ParseError


# Byte values (iterating over bytes yields ints)
SP = 0x20
HTAB = 0x09
CR = 0x0D
LF = 0x0A
COLON = 0x3A
SLASH = 0x2F
QUESTION = 0x3F

DEFAULT_MAX_HEADER_SIZE = 64 * 1024
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024


class ParseState(Enum):
    """Where the parser is inside the request."""

    METHOD = "method"
    PATH = "path"
    QUERY = "query"
    PROTOCOL = "protocol"
    HTTP_VERSION = "http_version"
    HEADER_KEY = "header_key"
    HEADER_VALUE = "header_value"
    CR = "cr"                # saw \r, expecting \n
    CRLF = "crlf"            # at the start of a line
    CRLFCR = "crlfcr"        # saw \r on an empty line, expecting \n
    BODY = "body"
    DONE = "done"
    INVALID = "invalid"

    @property
    def is_terminal(self) -> bool:
        return self in (ParseState.DONE, ParseState.INVALID)


@dataclass(frozen=True)
class HTTPRequest:
    """
    A fully parsed HTTP request. Immutable.

    Attributes:
        method:          "GET", "POST", ... exactly as sent
        path:            target before any '?': "/foo"
        original_target: target exactly as sent: "/foo?x=1"
        query:           raw text after '?', undecoded: "x=1"
        protocol:        "HTTP"
        http_version:    "1.1"
        headers:         lowercase name → value (last duplicate wins)
        hostname:        Host header without ":port"
        body:            exactly Content-Length bytes
        path_params:     values captured by the route pattern
                         ("/users/:id" + "/users/7" → {"id": "7"})
    """

    method: str
    path: str
    original_target: str = ""
    query: str = ""
    protocol: str = "HTTP"
    http_version: str = "1.1"
    headers: Mapping[str, str] = field(default_factory=dict)
    hostname: str = ""
    body: bytes = b""
    path_params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only views so a handler cannot edit a shared request
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "path_params", MappingProxyType(dict(self.path_params)))
        if not self.original_target:
            object.__setattr__(self, "original_target", self.path)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def version(self) -> str:
        """Protocol and version as on the wire: "HTTP/1.1"."""
        return f"{self.protocol}/{self.http_version}"

    @property
    def host(self) -> str:
        """The raw Host header, port included."""
        return self.headers.get("host", "")

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters: "text/html; charset=utf-8" → "text/html"."""
        ct = self.headers.get("content-type", "").split(";")[0].strip().lower()
        return ct or None

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def with_path_params(self, params: Mapping[str, str]) -> "HTTPRequest":
        """Copy of this request carrying the given route parameters."""
        return replace(self, path_params=params)


@dataclass
class ParseAccumulator:
    """
    Everything the state machine has collected so far.

    Kept separate from the state value so that step() can be a plain
    function of (state, byte, accumulator).
    """

    max_header_size: int = DEFAULT_MAX_HEADER_SIZE
    max_body_size: int = DEFAULT_MAX_BODY_SIZE

    method: bytearray = field(default_factory=bytearray)
    path: bytearray = field(default_factory=bytearray)
    query: bytearray = field(default_factory=bytearray)
    has_query: bool = False
    protocol: bytearray = field(default_factory=bytearray)
    http_version: bytearray = field(default_factory=bytearray)

    # Header currently being read
    header_name: bytearray = field(default_factory=bytearray)
    header_value: bytearray = field(default_factory=bytearray)
    headers: Dict[str, str] = field(default_factory=dict)

    body: bytearray = field(default_factory=bytearray)
    content_length: int = 0

    header_bytes: int = 0
    error: Optional[ParseError] = None

    def fail(self, message: str, status_code: int = 400) -> ParseState:
        """Record why parsing stopped and return the INVALID state."""
        self.error = ParseError(message, status_code)
        return ParseState.INVALID

    def commit_header(self) -> None:
        name = self.header_name.decode("latin-1")
        value = self.header_value.decode("latin-1").rstrip(" \t")
        self.headers[name] = value
        self.header_name.clear()
        self.header_value.clear()

    def end_request_line(self) -> ParseState:
        if not (self.method and self.path and self.protocol and self.http_version):
            return self.fail("incomplete request line")
        return ParseState.CR

    def end_headers(self) -> ParseState:
        """Decide between DONE and BODY once the blank line is seen."""
        raw = self.headers.get("content-length")
        if raw is None:
            return ParseState.DONE

        raw = raw.strip()
        if not raw or any(c not in "0123456789" for c in raw):
            return self.fail(f"invalid Content-Length: {raw!r}")

        # More digits than the limit has can only exceed it; int() on very
        # long digit strings also raises on recent Pythons
        if len(raw.lstrip("0")) > len(str(self.max_body_size)):
            return self.fail(f"body too large: {len(raw)}-digit Content-Length", status_code=413)

        length = int(raw)
        if length > self.max_body_size:
            return self.fail(f"body too large: {length} bytes", status_code=413)

        self.content_length = length
        return ParseState.BODY if length > 0 else ParseState.DONE


def _lower(byte: int) -> int:
    return byte + 32 if 0x41 <= byte <= 0x5A else byte


def step(state: ParseState, byte: int, acc: ParseAccumulator) -> ParseState:
    """
    Consume one byte and return the next state.

    This is the whole transition table. It only touches `acc`, so the
    parser can stop after any byte and resume with the next read.
    """
    if state.is_terminal:
        return state

    if state is ParseState.BODY:
        acc.body.append(byte)
        if len(acc.body) >= acc.content_length:
            return ParseState.DONE
        return ParseState.BODY

    acc.header_bytes += 1
    if acc.header_bytes > acc.max_header_size:
        return acc.fail("request header section too large", status_code=431)

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST LINE
    # ─────────────────────────────────────────────────────────────────────

    if state is ParseState.METHOD:
        if byte == SP:
            return ParseState.PATH
        if byte in (CR, LF):
            return acc.fail("malformed request line")
        acc.method.append(byte)
        return ParseState.METHOD

    if state is ParseState.PATH:
        if byte == SP:
            return ParseState.PROTOCOL
        if byte == QUESTION:
            acc.has_query = True
            return ParseState.QUERY
        if byte in (CR, LF):
            return acc.fail("malformed request line")
        acc.path.append(byte)
        return ParseState.PATH

    if state is ParseState.QUERY:
        if byte == SP:
            return ParseState.PROTOCOL
        if byte in (CR, LF):
            return acc.fail("malformed request line")
        acc.query.append(byte)
        return ParseState.QUERY

    if state is ParseState.PROTOCOL:
        if byte == SLASH:
            return ParseState.HTTP_VERSION
        if byte in (CR, LF):
            return acc.fail("malformed request line")
        acc.protocol.append(byte)
        return ParseState.PROTOCOL

    if state is ParseState.HTTP_VERSION:
        if byte == CR:
            return acc.end_request_line()
        if byte == LF:
            return acc.fail("malformed line terminator")
        acc.http_version.append(byte)
        return ParseState.HTTP_VERSION

    # ─────────────────────────────────────────────────────────────────────
    # LINE TERMINATORS
    # ─────────────────────────────────────────────────────────────────────

    if state is ParseState.CR:
        if byte == LF:
            return ParseState.CRLF
        return acc.fail("malformed line terminator")

    if state is ParseState.CRLF:
        if byte == CR:
            return ParseState.CRLFCR
        if byte in (COLON, SP, HTAB, LF):
            return acc.fail("malformed header line")
        acc.header_name.append(_lower(byte))
        return ParseState.HEADER_KEY

    if state is ParseState.CRLFCR:
        if byte == LF:
            return acc.end_headers()
        return acc.fail("malformed header terminator")

    # ─────────────────────────────────────────────────────────────────────
    # HEADERS
    # ─────────────────────────────────────────────────────────────────────

    if state is ParseState.HEADER_KEY:
        if byte == COLON:
            return ParseState.HEADER_VALUE
        if byte in (CR, LF):
            return acc.fail("header line without ':'")
        acc.header_name.append(_lower(byte))
        return ParseState.HEADER_KEY

    if state is ParseState.HEADER_VALUE:
        if byte in (SP, HTAB) and not acc.header_value:
            return ParseState.HEADER_VALUE  # leading whitespace
        if byte == CR:
            acc.commit_header()
            return ParseState.CR
        if byte == LF:
            return acc.fail("malformed line terminator")
        acc.header_value.append(byte)
        return ParseState.HEADER_VALUE

    return acc.fail(f"unexpected parser state {state.value}")


def _strip_port(host: str) -> str:
    """"example.com:3000" → "example.com", "[::1]:3000" → "[::1]"."""
    if host.startswith("["):
        end = host.find("]")
        return host[:end + 1] if end != -1 else host
    return host.split(":", 1)[0]


class RequestParser:
    """
    Incremental HTTP request parser.

    Usage:
        parser = RequestParser()
        while not parser.state.is_terminal:
            parser.feed(conn.receive(4096))

        if parser.state is ParseState.DONE:
            request = parser.request
        else:
            status = parser.error.status_code

    The result is identical no matter how the bytes are split across
    feed() calls.
    """

    def __init__(
        self,
        max_header_size: int = DEFAULT_MAX_HEADER_SIZE,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
    ):
        self.max_header_size = max_header_size
        self.max_body_size = max_body_size
        self.reset()

    def reset(self) -> None:
        """Forget everything and start over at METHOD."""
        self._state = ParseState.METHOD
        self._acc = ParseAccumulator(
            max_header_size=self.max_header_size,
            max_body_size=self.max_body_size,
        )
        self._request: Optional[HTTPRequest] = None

    @property
    def state(self) -> ParseState:
        return self._state

    @property
    def error(self) -> Optional[ParseError]:
        """Why parsing stopped, once the state is INVALID."""
        return self._acc.error

    @property
    def has_started(self) -> bool:
        """True once at least one byte of the request has been consumed."""
        return self._acc.header_bytes > 0

    def feed(self, data: bytes) -> ParseState:
        """
        Consume a chunk of bytes and return the resulting state.

        Body bytes are copied in slices rather than one step() call per
        byte; the resulting state is the same.
        """
        state = self._state
        acc = self._acc
        i, n = 0, len(data)

        while i < n and not state.is_terminal:
            if state is ParseState.BODY:
                take = min(acc.content_length - len(acc.body), n - i)
                acc.body += data[i:i + take]
                i += take
                if len(acc.body) >= acc.content_length:
                    state = ParseState.DONE
                continue

            state = step(state, data[i], acc)
            i += 1

        self._state = state
        return state

    @property
    def request(self) -> HTTPRequest:
        """
        The parsed request.

        Raises:
            LogicError: If parsing has not reached DONE.
        """
        if self._state is not ParseState.DONE:
            raise LogicError(f"request is not complete (state: {self._state.value})")

        if self._request is None:
            acc = self._acc
            path = acc.path.decode("latin-1")
            query = acc.query.decode("latin-1")
            target = f"{path}?{query}" if acc.has_query else path

            self._request = HTTPRequest(
                method=acc.method.decode("latin-1"),
                path=path,
                original_target=target,
                query=query,
                protocol=acc.protocol.decode("latin-1"),
                http_version=acc.http_version.decode("latin-1"),
                headers=acc.headers,
                hostname=_strip_port(acc.headers.get("host", "")),
                body=bytes(acc.body),
            )
        return self._request


def parse_request(
    data: bytes,
    max_header_size: int = DEFAULT_MAX_HEADER_SIZE,
    max_body_size: int = DEFAULT_MAX_BODY_SIZE,
) -> HTTPRequest:
    """
    Parse one complete, already assembled request.

    Raises:
        ParseError: If the bytes are malformed or end before the request
                    is complete.
    """
    parser = RequestParser(max_header_size=max_header_size, max_body_size=max_body_size)
    state = parser.feed(data)

    if state is ParseState.INVALID:
        raise parser.error
    if state is not ParseState.DONE:
        raise ParseError(f"incomplete request (stopped in state {state.value})")

    return parser.request
