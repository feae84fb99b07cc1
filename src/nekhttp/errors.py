"""
=============================================================================
SERVER ERRORS
=============================================================================

Every failure the server can raise lives in this module so callers can
catch a whole family at once:

    ServerError
    ├── SocketError          (wraps an OSError: operation + errno)
    │   ├── BindError        bind() failed (address in use, no permission)
    │   ├── ListenError      listen() failed
    │   ├── AcceptError      accept() failed (anything but "would block")
    │   ├── ReceiveError     recv() failed (anything but a timeout)
    │   └── SendError        sendall() failed
    ├── LogicError           operation attempted in the wrong lifecycle step
    └── ParseError           malformed request, carries an HTTP status code

Socket errors keep the original OSError as __cause__, so a traceback still
shows exactly what the kernel said.
=============================================================================
"""

from typing import Optional


class ServerError(Exception):
    """Base class for all errors raised by nekhttp."""


class SocketError(ServerError):
    """
    A socket operation failed at the OS level.

    Attributes:
        operation: Name of the failed call ("bind", "accept", ...).
        errno: OS error number, or None if the OS did not report one.
    """

    operation = "socket"

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno

    @classmethod
    def from_os_error(cls, exc: OSError) -> "SocketError":
        """Build the error from an OSError, keeping its errno."""
        return cls(f"{cls.operation}: {exc.strerror or exc}", errno=exc.errno)


class BindError(SocketError):
    operation = "bind"


class ListenError(SocketError):
    operation = "listen"


class AcceptError(SocketError):
    operation = "accept"


class ReceiveError(SocketError):
    operation = "recv"


class SendError(SocketError):
    operation = "send"


class LogicError(ServerError):
    """
    An operation was attempted before its prerequisites were met.

    Examples: receiving before accept(), listening before the socket was
    created, sending the same response twice.
    """


class ParseError(ServerError):
    """
    The request bytes could not be parsed.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                      malformed syntax
        413 Payload Too Large                body above the size limit
        431 Request Header Fields Too Large  header section above the limit
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code
