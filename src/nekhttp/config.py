"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables for the server in one dataclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Defaults          ServerConfig()                                │
    │   2. Environment       ServerConfig.from_env()   (NEKHTTP_* vars)    │
    │   3. Command line      python -m nekhttp --port 8000                 │
    │                                                                      │
    │   Later sources override earlier ones.                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Validation happens eagerly in validate(), which HTTPServer calls from its
constructor. A bad port should fail at startup, not on the first request.
=============================================================================
"""

import os
from dataclasses import dataclass


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    TIMING
    - receive_timeout: how long a peer may stay silent mid-request
    - request_timeout: how long a peer may take for the whole request
    - poll_interval: how often the accept loop checks for shutdown

    LIMITS
    - max_header_size, max_body_size

    LOGGING
    - log_level, server_name
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address to bind. "0.0.0.0" listens on every IPv4 interface."""

    port: int = 3000
    """Port to listen on. 0 lets the OS pick a free port (handy in tests)."""

    backlog: int = 5
    """Length of the kernel's pending-connection queue."""

    buffer_size: int = 4096
    """Maximum bytes read from the peer per recv() call."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMING
    # ─────────────────────────────────────────────────────────────────────

    receive_timeout: float = 10.0
    """
    Seconds a connected peer may stay silent before the request is
    abandoned with 408 Request Timeout.
    """

    request_timeout: float = 30.0
    """
    Seconds a peer has in total to deliver a complete request, however
    steadily it trickles bytes in. Past it the request gets 408.
    """

    poll_interval: float = 0.5
    """
    Seconds the accept loop waits for a connection before re-checking
    whether shutdown() was requested.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_header_size: int = 64 * 1024
    """Request line + headers above this size are rejected with 431."""

    max_body_size: int = 10 * 1024 * 1024
    """Declared Content-Length above this size is rejected with 413."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING or ERROR."""

    server_name: str = "nekhttp/1.0"
    """Name printed in the startup log line."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        NEKHTTP_HOST              Bind address (default: 0.0.0.0)
        NEKHTTP_PORT              Port (default: 3000)
        NEKHTTP_RECEIVE_TIMEOUT   Receive timeout in seconds (default: 10)
        NEKHTTP_REQUEST_TIMEOUT   Whole-request deadline in seconds (default: 30)
        NEKHTTP_LOG_LEVEL         Logging level (default: INFO)
        """
        return cls(
            host=os.getenv("NEKHTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("NEKHTTP_PORT", "3000")),
            receive_timeout=float(os.getenv("NEKHTTP_RECEIVE_TIMEOUT", "10")),
            request_timeout=float(os.getenv("NEKHTTP_REQUEST_TIMEOUT", "30")),
            log_level=os.getenv("NEKHTTP_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.receive_timeout <= 0:
            raise ValueError("receive_timeout must be > 0")

        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if self.max_header_size < 1 or self.max_body_size < 0:
            raise ValueError("size limits must be positive")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {self.log_level}")
