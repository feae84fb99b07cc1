"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server produces, and the table that turns a code
into the reason phrase of the status line:

    HTTP/1.1 404 Not Found
             ─── ─────────
              │      └── reason phrase (looked up in a StatusTable)
              └───────── status code

The table is an ordinary read-only object that is built explicitly and
handed to each HTTPResponse. There is no module-level mutable registry a
handler could scribble on.
=============================================================================
"""

from enum import IntEnum
from types import MappingProxyType
from typing import Mapping, Optional


class HTTPStatus(IntEnum):
    """
    Status codes used by the server.

    IntEnum, so members compare equal to plain ints:

        >>> HTTPStatus.NOT_FOUND == 404
        True
    """

    OK = 200                                # Standard success response
    BAD_REQUEST = 400                       # Malformed request syntax
    NOT_FOUND = 404                         # No route for this path
    REQUEST_TIMEOUT = 408                   # Client went silent mid-request
    PAYLOAD_TOO_LARGE = 413                 # Content-Length above the limit
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431   # Header section above the limit
    INTERNAL_SERVER_ERROR = 500             # Handler raised


_DEFAULT_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}


class StatusTable:
    """
    Read-only mapping from status code to reason phrase.

    Unknown codes map to "" (the reason phrase is optional in HTTP/1.1).

        table = StatusTable.default()
        table.phrase(404)               # "Not Found"
        table.phrase(299)               # ""

        custom = StatusTable({200: "Fine", 404: "Nope"})
    """

    def __init__(self, phrases: Optional[Mapping[int, str]] = None):
        self._phrases = MappingProxyType(
            {int(code): text for code, text in (phrases or {}).items()}
        )

    @classmethod
    def default(cls) -> "StatusTable":
        """The standard phrases for every code in HTTPStatus."""
        return cls(_DEFAULT_PHRASES)

    @property
    def phrases(self) -> Mapping[int, str]:
        return self._phrases

    def phrase(self, code: int) -> str:
        return self._phrases.get(int(code), "")

    def __contains__(self, code: object) -> bool:
        return code in self._phrases

    def __len__(self) -> int:
        return len(self._phrases)
