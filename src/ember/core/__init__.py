"""
=============================================================================
CORE NETWORKING
=============================================================================

The built-in transport: non-blocking sockets, HTTP/1.1 connections with
keep-alive, and WebSocket upgrades.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ SOCKET TRANSPORT (socket_transport.py)                              │
    │   listening socket + selector, blocking and daemonized modes        │
    ├─────────────────────────────────────────────────────────────────────┤
    │ CONNECTION (connection.py)                                          │
    │   buffered HTTP request extraction, response writing                │
    ├─────────────────────────────────────────────────────────────────────┤
    │ WEBSOCKET (websocket.py)                                            │
    │   frames ↔ messages over the websockets sans-I/O protocol          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_transport import SocketTransport
from .websocket import WebSocketConnection

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketTransport",
    "WebSocketConnection",
]
