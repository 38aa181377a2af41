"""
pytest configuration and fixtures.
"""

import socket
from typing import Any, Callable, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ember import Ember, ServerConfig
from ember.http import HTTPRequest
from ember.transport import Transport


class FakeTransport(Transport):
    """
    In-memory transport.

    Each service() call runs the next scripted action with the application
    that was passed to start(). After max_services calls it asks the server
    to stop so a broken test cannot loop forever.
    """

    def __init__(self, max_services: int = 1000):
        self.app = None
        self.actions: List[Callable[[Any], None]] = []
        self.services = 0
        self.max_services = max_services
        self.listening = False
        self.daemonized = False
        self.bound = None
        self.stops = 0
        self.daemon_stops = 0

    def start(self, host, port, app):
        self.app = app
        self.bound = (host, port)
        self.listening = True

    def service(self):
        self.services += 1
        if self.actions:
            self.actions.pop(0)(self.app)
        elif self.services >= self.max_services:
            self.app.extinguish()

    def stop(self):
        self.listening = False
        self.stops += 1

    def start_daemonized(self, host, port, app):
        self.app = app
        self.bound = (host, port)
        self.daemonized = True

    def stop_daemonized(self):
        self.daemonized = False
        self.daemon_stops += 1


class FakeWebSocket:
    """Stands in for an open WebSocket connection."""

    def __init__(self, request: HTTPRequest):
        self.request = request
        self.sent: List[Any] = []
        self.closed = False
        self._on_message: Optional[Callable] = None
        self._on_close: Optional[Callable] = None

    def on_message(self, callback):
        self._on_message = callback

    def on_close(self, callback):
        self._on_close = callback

    def send(self, message):
        self.sent.append(message)

    def close(self):
        self.closed = True

    # Test drivers
    def receive(self, message, binary=False):
        self._on_message(binary, message)

    def disconnect(self):
        self._on_close()


def make_request(
    path: str = "/",
    method: str = "GET",
    address: tuple = ("127.0.0.1", 50000),
    headers: Optional[dict] = None,
    body: bytes = b"",
) -> HTTPRequest:
    return HTTPRequest(
        method=method,
        path=path,
        headers=dict(headers or {}),
        body=body,
        client_address=address,
    )


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
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
    """Test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        refresh_rate=0.0001,
        timeout=5.0,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def app(config: ServerConfig, transport: FakeTransport) -> Ember:
    """Ember wired to the in-memory transport."""
    return Ember(config, transport=transport)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def request_factory() -> Callable[..., HTTPRequest]:
    return make_request


@pytest.fixture
def ws_factory() -> Callable[..., FakeWebSocket]:
    """Build a FakeWebSocket for a request from the given address."""
    def factory(address: tuple = ("127.0.0.1", 50000), path: str = "/") -> FakeWebSocket:
        return FakeWebSocket(make_request(path=path, address=address))
    return factory
