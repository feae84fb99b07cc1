"""
=============================================================================
NEKHTTP - Minimal HTTP/1.1 Server on Raw Sockets
=============================================================================

A small HTTP/1.1 server: one listening socket, one background thread, one
request at a time. The request parser is a byte-at-a-time state machine,
so requests may arrive split across any number of reads.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    nekhttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m nekhttp)
    ├── server.py            # HTTPServer: accept loop + dispatch
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── core/
    │   └── connection.py    # Listening socket + accepted peer
    ├── http/
    │   ├── request.py       # Incremental request parser
    │   ├── response.py      # Response rendering and send-once
    │   ├── router.py        # Ordered route table
    │   └── status_codes.py  # Status codes and reason phrases
    └── handlers/
        └── index.py         # index.html with a visit counter

=============================================================================
QUICK START
=============================================================================

    from nekhttp import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=3000))

    @server.get("/")
    def index(request, response):
        response.send("<h1>Hello, World!</h1>")

    @server.get("/users/:id")
    def get_user(request, response):
        response.send(f"<p>user {request.path_params['id']}</p>")

    server.run()   # blocks until Ctrl+C
=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import (
    AcceptError,
    BindError,
    ListenError,
    LogicError,
    ParseError,
    ReceiveError,
    SendError,
    ServerError,
    SocketError,
)
from .http import HTTPRequest, HTTPResponse, HTTPStatus, Router, StatusTable
from .server import HTTPServer

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "Router",
    "StatusTable",
    # Errors
    "ServerError",
    "SocketError",
    "BindError",
    "ListenError",
    "AcceptError",
    "ReceiveError",
    "SendError",
    "LogicError",
    "ParseError",
    "__version__",
]
