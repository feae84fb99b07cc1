"""
=============================================================================
HTTP - Protocol Layer
=============================================================================

Everything that knows what HTTP looks like:

    request.py       bytes → HTTPRequest (incremental state machine)
    response.py      HTTPResponse → bytes (status line, headers, body)
    router.py        (method, path) → handler
    status_codes.py  status codes and their reason phrases
=============================================================================
"""

from .request import HTTPRequest, ParseState, RequestParser, parse_request
from .response import HTTPResponse
from .router import Handler, Route, RouteMatch, Router
from .status_codes import HTTPStatus, StatusTable

__all__ = [
    # Request parsing
    "HTTPRequest",
    "ParseState",
    "RequestParser",
    "parse_request",

    # Response building
    "HTTPResponse",

    # Routing
    "Handler",
    "Route",
    "RouteMatch",
    "Router",

    # Status codes
    "HTTPStatus",
    "StatusTable",
]
