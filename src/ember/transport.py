"""
=============================================================================
TRANSPORT BOUNDARY
=============================================================================

Ember does not parse HTTP or frame WebSocket messages in its event layer.
It talks to a transport through two small interfaces:

    ┌──────────────────────┐   call(request) → response    ┌──────────────┐
    │                      │ ◄──────────────────────────── │              │
    │      Ember           │   on_headers(request) → resp  │  Transport   │
    │   (Application)      │ ◄──────────────────────────── │              │
    │                      │   on_ws_open(ws)              │              │
    │                      │ ◄──────────────────────────── │              │
    │                      │                               │              │
    │                      │   start / service / stop      │              │
    │                      │ ────────────────────────────► │              │
    │                      │   start_daemonized / stop_... │              │
    │                      │ ────────────────────────────► │              │
    └──────────────────────┘                               └──────────────┘

BLOCKING MODE
    start() binds; the server loop calls service() once per cycle, which
    must handle pending I/O and return without waiting; stop() releases.

DAEMONIZED MODE
    start_daemonized() returns immediately and keeps serving on its own
    thread until stop_daemonized(). If that thread dies on an error, the
    transport releases its socket and reports on_transport_failure(error).

The built-in implementation is ember.core.SocketTransport. Tests use an
in-memory fake with the same shape.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol, Tuple

from .http.request import HTTPRequest


class WebSocket(Protocol):
    """What the WebSocket pipeline needs from an open connection."""

    request: HTTPRequest

    def on_message(self, callback: Callable[[bool, Any], None]) -> None: ...

    def on_close(self, callback: Callable[[], None]) -> None: ...

    def send(self, message: Any) -> None: ...

    def close(self) -> None: ...


class Application(Protocol):
    """The callbacks a transport invokes."""

    def call(self, request: HTTPRequest) -> Any: ...

    def on_headers(self, request: HTTPRequest) -> Optional[Any]: ...

    def on_ws_open(self, ws: WebSocket) -> None: ...

    def on_transport_failure(self, error: BaseException) -> None: ...


class Transport(ABC):
    """Network collaborator driven by the Ember run loop."""

    @abstractmethod
    def start(self, host: str, port: int, app: Application) -> None:
        """Bind and listen for a blocking server."""

    @abstractmethod
    def service(self) -> None:
        """Handle whatever I/O is pending, then return."""

    @abstractmethod
    def stop(self) -> None:
        """Release everything opened by start()."""

    @abstractmethod
    def start_daemonized(self, host: str, port: int, app: Application) -> None:
        """Start serving on a background thread and return."""

    @abstractmethod
    def stop_daemonized(self) -> None:
        """Stop the background server synchronously."""

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port) while serving, None otherwise."""
        return None
