"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nekhttp import HTTPServer, ServerConfig
from nekhttp.http import HTTPRequest, HTTPResponse


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        receive_timeout=2.0,
        poll_interval=0.05,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class FakeConnection:
    """Stands in for core.Connection: records what would be written."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.sent: List[bytes] = []
        self.fail_with = fail_with

    def send(self, data: bytes) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(bytes(data))

    @property
    def data(self) -> bytes:
        return b"".join(self.sent)


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


def send_raw(port: int, payload: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes to 127.0.0.1:port and read until the server closes."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as s:
        if payload:
            s.sendall(payload)
        chunks = []
        while True:
            chunk = s.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[HTTPServer, None, None]:
    """A server listening on a free port with a few test routes."""
    server = HTTPServer(config)

    @server.get("/test")
    def test_route(request: HTTPRequest, response: HTTPResponse) -> None:
        response.send("<p>ok</p>")

    @server.post("/echo")
    def echo_route(request: HTTPRequest, response: HTTPResponse) -> None:
        response.set_header("Content-Type", "application/octet-stream")
        response.send(request.body)

    @server.get("/users/:id")
    def user_route(request: HTTPRequest, response: HTTPResponse) -> None:
        response.send(f"user={request.path_params['id']}")

    @server.get("/boom")
    def boom_route(request: HTTPRequest, response: HTTPResponse) -> None:
        raise RuntimeError("handler exploded")

    @server.get("/silent")
    def silent_route(request: HTTPRequest, response: HTTPResponse) -> None:
        response.set_header("X-Touched", "yes")

    server.listen()
    assert server.is_running

    yield server

    server.shutdown()
    server.wait(timeout=5.0)
