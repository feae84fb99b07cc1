"""
=============================================================================
CORE - Transport Layer
=============================================================================

Everything below HTTP: the listening socket, the accepted peer and the raw
byte I/O between them. Nothing in this package knows what a request or a
header is.
=============================================================================
"""

from .connection import Connection

__all__ = [
    "Connection",   # Listening socket + current peer, raw byte I/O
]
