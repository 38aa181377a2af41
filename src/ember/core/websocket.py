"""
=============================================================================
WEBSOCKET CONNECTIONS
=============================================================================

After a successful upgrade the TCP connection stops speaking HTTP and
carries WebSocket frames. Framing, masking, ping/pong and the closing
handshake are done by the sans-I/O protocol object from the `websockets`
library; this module feeds it bytes and turns its events into the
two callbacks Ember needs.

    socket bytes ──► protocol.receive_data() ──► events_received()
                                                       │
                         ┌─────────────────────────────┤
                         ▼                             ▼
                 TEXT/BINARY/CONT frames          CLOSE/PING/PONG
                 reassembled into one             answered by the
                 message, then                    protocol itself
                 on_message(binary, message)

    ws.send(...) ──► protocol.send_text/send_binary ──► data_to_send()
                                                            │
                                                            ▼
                                                     socket bytes

Text messages reach handlers as str, binary messages as bytes.

=============================================================================
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from websockets.frames import CloseCode, Opcode
from websockets.protocol import State
from websockets.server import ServerProtocol

from ..http.request import HTTPRequest


logger = logging.getLogger(__name__)


class WebSocketConnection:
    """
    One open WebSocket, bound to the Connection that carries it.

    Attributes:
        request: The HTTP request that performed the upgrade.
        protocol: The websockets ServerProtocol doing the framing.
    """

    def __init__(
        self,
        request: HTTPRequest,
        protocol: ServerProtocol,
        write: Callable[[bytes], None],
        finish: Callable[[], None],
        lock: Optional[threading.RLock] = None,
    ):
        self.request = request
        self.protocol = protocol
        self._write = write
        self._finish = finish
        # Shared with the transport; send() may come from any thread.
        self._lock = lock or threading.RLock()

        self._message_callback: Optional[Callable[[bool, Any], None]] = None
        self._close_callback: Optional[Callable[[], None]] = None

        self._fragments: List[bytes] = []
        self._fragment_binary = False
        self._lost = False

    @property
    def open(self) -> bool:
        return not self._lost and self.protocol.state is State.OPEN

    def on_message(self, callback: Callable[[bool, Any], None]) -> None:
        self._message_callback = callback

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callback = callback

    def send(self, message: Any) -> None:
        """Queue one text (str) or binary (bytes) message."""
        with self._lock:
            if not self.open:
                logger.debug(f"Dropping message for closed WebSocket {self.request.remote_addr}")
                return
            if isinstance(message, str):
                self.protocol.send_text(message.encode("utf-8"))
            else:
                self.protocol.send_binary(bytes(message))
            self.flush()

    def close(self, code: int = CloseCode.NORMAL_CLOSURE, reason: str = "") -> None:
        """Start the closing handshake."""
        with self._lock:
            if not self.open:
                return
            self.protocol.send_close(code, reason)
            self.flush()

    # ─────────────────────────────────────────────────────────────────────
    # Driven by the owning Connection
    # ─────────────────────────────────────────────────────────────────────

    def receive_data(self, data: bytes) -> None:
        self.protocol.receive_data(data)
        self._process_events()
        self.flush()

    def receive_eof(self) -> None:
        self.protocol.receive_eof()
        self._process_events()
        self.flush()

    def flush(self) -> None:
        for chunk in self.protocol.data_to_send():
            if chunk:
                self._write(chunk)
            else:
                # The protocol asks for the TCP connection to be closed.
                self._finish()

    def connection_lost(self) -> None:
        """Called once the socket is gone; fires the close callback once."""
        if self._lost:
            return
        self._lost = True
        if self._close_callback is not None:
            self._close_callback()

    def _process_events(self) -> None:
        for frame in self.protocol.events_received():
            if frame.opcode is Opcode.TEXT or frame.opcode is Opcode.BINARY:
                self._fragments = [frame.data]
                self._fragment_binary = frame.opcode is Opcode.BINARY
            elif frame.opcode is Opcode.CONT:
                self._fragments.append(frame.data)
            else:
                continue  # control frames
            if frame.fin:
                self._deliver()

    def _deliver(self) -> None:
        data = b"".join(self._fragments)
        self._fragments = []
        binary = self._fragment_binary

        message: Any = data
        if not binary:
            try:
                message = data.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Closing WebSocket after invalid UTF-8 in a text message")
                self.protocol.fail(CloseCode.INVALID_DATA, "invalid UTF-8")
                return

        if self._message_callback is not None:
            self._message_callback(binary, message)
