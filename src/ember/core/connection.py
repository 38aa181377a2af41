"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

One Connection wraps one accepted client socket. Sockets are non-blocking:
the transport's selector says when bytes are waiting, and handle_read()
consumes whatever arrived without ever waiting for more.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

    Client sends:   "GET / HTTP/1.1\\r\\nHost: x\\r\\n\\r\\n"
    recv() may give:  "GET / HT"  then  "TP/1.1\\r\\nHost: x\\r\\n\\r\\n"

So received bytes are buffered, and a request is only handled once its
header terminator (and then Content-Length body bytes) are present. Bytes
beyond the end of one request stay in the buffer for the next one.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
               ▲                          │                     │
               └──────────────────────────┼─────────────────────┘
                                          │
                         upgrade accepted ▼
                                       UPGRADED   (WebSocket frames)
                                          │
                    error / EOF / timeout ▼
                                       CLOSED

=============================================================================
WHERE THE APPLICATION IS CALLED
=============================================================================

    head complete  ──► app.on_headers(request)
                          non-None → sent as the response, body never read
    upgrade head   ──► WebSocket handshake ──► app.on_ws_open(ws)
    body complete  ──► app.call(request) ──► coerce_response() ──► socket

=============================================================================
"""

import logging
import socket
import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable, Optional

from websockets.protocol import State
from websockets.server import ServerProtocol

from ..http.request import HTTPParseError, HTTPRequest, RequestParser
from ..http.response import HTTPResponse, coerce_response, internal_error
from ..transport import Application
from .websocket import WebSocketConnection


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    UPGRADED = "upgraded"
    CLOSED = "closed"


class Connection:
    """
    A client connection with buffered reads and queued writes.

    Attributes:
        socket: The non-blocking client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current ConnectionState.
        requests_handled: HTTP requests answered on this connection.
        websocket: The WebSocketConnection once upgraded, else None.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: tuple,
        app: Application,
        lock: threading.RLock,
        on_write_pending: Callable[["Connection", bool], None],
        on_closed: Callable[["Connection"], None],
        buffer_size: int = 8192,
        max_request_size: int = 10 * 1024 * 1024,
        server_name: str = "Ember/1.0",
    ):
        self.socket = sock
        self.address = (address[0], address[1])
        self.id = str(uuid.uuid4())[:8]
        self.state = ConnectionState.NEW
        self.created_at = time.time()
        self.last_activity = self.created_at
        self.requests_handled = 0
        self.websocket: Optional[WebSocketConnection] = None

        self.buffer_size = buffer_size
        self.max_request_size = max_request_size
        self.server_name = server_name

        self._app = app
        self._lock = lock
        self._on_write_pending = on_write_pending
        self._on_closed = on_closed
        self._parser = RequestParser(max_request_size=max_request_size)

        self._buffer = bytearray()
        self._outbox = bytearray()
        self._pending: Optional[HTTPRequest] = None
        self._close_when_flushed = False
        self._write_pending = False

        self.socket.setblocking(False)

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    # =========================================================================
    # READING
    # =========================================================================

    def handle_read(self) -> None:
        """Consume whatever the socket has and act on complete requests."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            logger.debug(f"[{self.id}] Receive failed: {e}")
            self.close()
            return

        if not chunk:
            if self.websocket is not None:
                self.websocket.receive_eof()
            self.close()
            return

        self.last_activity = time.time()
        if self.websocket is not None:
            self.websocket.receive_data(chunk)
            return

        self._buffer += chunk
        self._process_http()

    def _process_http(self) -> None:
        while not self.closed and not self._close_when_flushed and self.websocket is None:
            if self._pending is None:
                header_end = self._buffer.find(b"\r\n\r\n")
                if header_end == -1:
                    if len(self._buffer) > self.max_request_size:
                        self._reject(HTTPParseError("Request too large", status_code=413))
                    else:
                        self.state = ConnectionState.READING
                    return

                head = bytes(self._buffer[:header_end + 4])
                try:
                    request = self._parser.parse_head(head, self.address)
                except HTTPParseError as e:
                    logger.warning(f"[{self.id}] Bad request: {e.message}")
                    self._reject(e)
                    return
                if request.content_length > self.max_request_size:
                    self._reject(HTTPParseError("Request body too large", status_code=413))
                    return
                del self._buffer[:header_end + 4]

                self.state = ConnectionState.PROCESSING
                early = self._app.on_headers(request)
                if early is not None:
                    self.requests_handled += 1
                    self._respond(early, keep_alive=False)
                    return

                if request.is_websocket_upgrade:
                    self._upgrade(request)
                    return

                self._pending = request

            request = self._pending
            length = request.content_length
            if len(self._buffer) < length:
                self.state = ConnectionState.READING
                return

            request.body = bytes(self._buffer[:length])
            request.raw = request.raw + request.body
            del self._buffer[:length]
            self._pending = None
            self.requests_handled += 1

            self.state = ConnectionState.PROCESSING
            logger.debug(f"[{self.id}] {request.method} {request.path}")
            self._respond(self._app.call(request), keep_alive=request.is_keep_alive)

    # =========================================================================
    # RESPONDING
    # =========================================================================

    def _respond(self, value: Any, keep_alive: bool) -> None:
        try:
            response = coerce_response(value)
        except (TypeError, ValueError) as e:
            logger.error(f"[{self.id}] {e}")
            response = internal_error()

        if response.headers.get("Connection", "").lower() == "close":
            keep_alive = False
        if not keep_alive:
            response.headers.setdefault("Connection", "close")
            self._close_when_flushed = True

        self.state = ConnectionState.WRITING
        self.write(response.to_bytes(self.server_name))
        if keep_alive and not self.closed:
            self.state = ConnectionState.KEEP_ALIVE

    def _reject(self, error: HTTPParseError) -> None:
        response = HTTPResponse(
            status=error.status_code,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=error.message,
        )
        self._respond(response, keep_alive=False)

    # =========================================================================
    # WEBSOCKET UPGRADE
    # =========================================================================

    def _upgrade(self, request: HTTPRequest) -> None:
        """
        Run the opening handshake on the already-buffered request head.

        The protocol object parses the head itself; a rejected handshake
        leaves an error response in its output and the connection closes
        once that is sent.
        """
        protocol = ServerProtocol(max_size=self.max_request_size)
        protocol.receive_data(request.raw)
        events = protocol.events_received()
        if events:
            protocol.send_response(protocol.accept(events[0]))

        ws = WebSocketConnection(request, protocol, self.write, self._finish, self._lock)
        if protocol.state is not State.OPEN:
            logger.warning(f"[{self.id}] WebSocket handshake rejected: {protocol.handshake_exc}")
            self._close_when_flushed = True
            ws.flush()
            if not self.closed:
                self.flush()
            return

        self.websocket = ws
        self.state = ConnectionState.UPGRADED
        self.requests_handled += 1
        ws.flush()
        logger.debug(f"[{self.id}] Upgraded to WebSocket")
        self._app.on_ws_open(ws)

        # Frames sent right behind the handshake.
        if self._buffer and not self.closed:
            leftover = bytes(self._buffer)
            self._buffer.clear()
            ws.receive_data(leftover)

    def _finish(self) -> None:
        self._close_when_flushed = True
        self.flush()

    # =========================================================================
    # WRITING AND CLOSING
    # =========================================================================

    def write(self, data: bytes) -> None:
        """Queue bytes and send as much as the socket takes right now."""
        with self._lock:
            if self.closed:
                return
            self._outbox += data
            self.flush()

    def flush(self) -> None:
        with self._lock:
            if self.closed:
                return
            while self._outbox:
                try:
                    sent = self.socket.send(self._outbox)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as e:
                    logger.warning(f"[{self.id}] Send failed: {e}")
                    self.close()
                    return
                del self._outbox[:sent]
                self.last_activity = time.time()

            pending = bool(self._outbox)
            if pending != self._write_pending:
                self._write_pending = pending
                self._on_write_pending(self, pending)

            if not pending and self._close_when_flushed:
                self.close()

    def close(self) -> None:
        """Close the socket; an open WebSocket is reported as closed."""
        with self._lock:
            if self.closed:
                return
            self.state = ConnectionState.CLOSED
            self._on_closed(self)
            try:
                self.socket.close()
            except OSError:
                pass  # already closed
            logger.debug(
                f"[{self.id}] Connection closed after {self.requests_handled} request(s)"
            )
            if self.websocket is not None:
                self.websocket.connection_lost()

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.address[0]}:{self.address[1]} {self.state.value}>"
