"""
=============================================================================
SOCKET TRANSPORT
=============================================================================

The built-in Transport: a listening TCP socket plus every accepted client
socket, all non-blocking and watched by one selector.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    start()      socket() → setsockopt() → bind() → listen()
                 register the listening socket with the selector

    service()    select(timeout)          ← 0 in blocking mode: never waits
                   listening socket ready → accept() every queued client
                   client readable        → Connection.handle_read()
                   client writable        → Connection.flush()
                 close idle HTTP connections past config.timeout

    stop()       close every client, then the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bound to host:port
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │Connection │         │Connection │         │Connection │
    │  (HTTP)   │         │(WebSocket)│         │  (HTTP)   │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
DAEMONIZED MODE
=============================================================================

start_daemonized() runs the same service() on a background thread, with
select() waiting up to config.daemon_poll_interval so the thread sleeps
while idle. All connection work happens under one re-entrant lock, so
Ember.send() from the caller's thread never interleaves with a handler
writing on the transport thread.

=============================================================================
"""

import logging
import selectors
import socket
import threading
from typing import Dict, Optional, Tuple

from ..config import ServerConfig
from ..transport import Application, Transport
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketTransport(Transport):
    """
    Selector-driven TCP transport for Ember.

    Usage:
        transport = SocketTransport(config)
        transport.start("127.0.0.1", 8080, app)
        while serving:
            transport.service()
        transport.stop()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()

        self._socket: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._app: Optional[Application] = None
        self._connections: Dict[int, Connection] = {}
        self._lock = threading.RLock()

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return (host, port)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def _create_socket(self, host: str) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return sock

    # =========================================================================
    # BLOCKING MODE
    # =========================================================================

    def start(self, host: str, port: int, app: Application) -> None:
        if self._socket is not None:
            raise RuntimeError("Transport is already listening")
        self.config.validate()

        sock = self._create_socket(host)
        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise

        self._socket = sock
        self._app = app
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ, data=None)

        bound = self.address
        logger.info(f"Listening on {bound[0]}:{bound[1]}")

    def service(self, timeout: float = 0) -> None:
        selector = self._selector
        if selector is None:
            return
        events = selector.select(timeout)

        with self._lock:
            for key, mask in events:
                if key.data is None:
                    self._accept()
                    continue
                conn: Connection = key.data
                if conn.closed:
                    continue
                try:
                    if mask & selectors.EVENT_READ:
                        conn.handle_read()
                    if mask & selectors.EVENT_WRITE and not conn.closed:
                        conn.flush()
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    conn.close()
            self._reap_idle()

    def stop(self) -> None:
        with self._lock:
            for conn in list(self._connections.values()):
                conn.close()
            self._connections.clear()

            if self._selector is not None:
                self._selector.close()
                self._selector = None
            if self._socket is not None:
                try:
                    self._socket.close()
                except OSError:
                    pass  # already closed
                self._socket = None
            self._app = None
        logger.info("Socket transport stopped")

    def _accept(self) -> None:
        while self._socket is not None:
            try:
                client_socket, client_address = self._socket.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                logger.error(f"Accept error: {e}")
                return

            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

            conn = Connection(
                client_socket,
                client_address,
                app=self._app,
                lock=self._lock,
                on_write_pending=self._set_write_interest,
                on_closed=self._forget,
                buffer_size=self.config.buffer_size,
                max_request_size=self.config.max_request_size,
                server_name=self.config.server_name,
            )
            self._connections[client_socket.fileno()] = conn
            self._selector.register(client_socket, selectors.EVENT_READ, data=conn)
            logger.debug(f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}")

    def _set_write_interest(self, conn: Connection, pending: bool) -> None:
        if self._selector is None:
            return
        events = selectors.EVENT_READ | (selectors.EVENT_WRITE if pending else 0)
        try:
            self._selector.modify(conn.socket, events, data=conn)
        except (KeyError, ValueError):
            pass  # socket already unregistered

    def _forget(self, conn: Connection) -> None:
        for fd, known in list(self._connections.items()):
            if known is conn:
                del self._connections[fd]
        if self._selector is not None:
            try:
                self._selector.unregister(conn.socket)
            except (KeyError, ValueError):
                pass  # never registered or already gone

    def _reap_idle(self) -> None:
        timeout = self.config.timeout
        if timeout is None:
            return
        for conn in list(self._connections.values()):
            if conn.websocket is None and conn.idle_time > timeout:
                logger.debug(f"[{conn.id}] Idle timeout")
                conn.close()

    # =========================================================================
    # DAEMONIZED MODE
    # =========================================================================

    def start_daemonized(self, host: str, port: int, app: Application) -> None:
        self.start(host, port, app)
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._serve_forever,
            name="ember-transport",
            daemon=True,
        )
        self._thread.start()

    def _serve_forever(self) -> None:
        interval = self.config.daemon_poll_interval
        try:
            while not self._stop_event.is_set() and self._selector is not None:
                self.service(interval)
        except Exception as e:
            logger.exception(f"Transport thread stopped by an error: {e}")
            self._thread = None
            app = self._app
            self.stop()
            if app is not None:
                app.on_transport_failure(e)

    def stop_daemonized(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        # A handler on the transport thread may stop its own server.
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self.stop()
