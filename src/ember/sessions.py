"""
WebSocket session registry: client id → open connection.

One entry per client id. Registering a second connection for the same id
replaces the first without closing it; the replaced connection keeps
running but can no longer be reached through the registry.
"""

import logging
from typing import Dict, Iterator, List, Optional

from .transport import WebSocket


logger = logging.getLogger(__name__)


class SessionRegistry:
    """Open WebSocket connections keyed by client id."""

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}

    def register(self, client_id: str, ws: WebSocket) -> None:
        if client_id in self._sockets:
            logger.debug(f"[{client_id}] WebSocket replaced by a new connection")
        self._sockets[client_id] = ws

    def discard(self, client_id: str, ws: Optional[WebSocket] = None) -> bool:
        """
        Drop the entry for client_id.

        When ws is given the entry is only dropped if it is still that
        connection, so closing a replaced socket leaves its successor alone.
        """
        current = self._sockets.get(client_id)
        if current is None or (ws is not None and current is not ws):
            return False
        del self._sockets[client_id]
        return True

    def get(self, client_id: str) -> Optional[WebSocket]:
        return self._sockets.get(client_id)

    def ids(self) -> List[str]:
        return list(self._sockets)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._sockets

    def __len__(self) -> int:
        return len(self._sockets)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sockets))
