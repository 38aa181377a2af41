"""
=============================================================================
EMBER - Event-Driven HTTP/WebSocket Server for Embedding
=============================================================================

Ember lets an application become a web server without handing over its
main loop. You register handlers on named events; the server fires them
for HTTP requests, WebSocket messages and its own lifecycle.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         EMBER ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. EVENT ENGINE                                                    │
    │      - Ordered handler stacks with positional insert                 │
    │      - Handler ids for removal                                       │
    │      - Protected lifecycle events                                    │
    │                                                                      │
    │   2. PIPELINES                                                       │
    │      - before-request patches, last request handler wins             │
    │      - before-message patches, per-client WebSocket registry         │
    │                                                                      │
    │   3. RUN LOOP                                                        │
    │      - Blocking cooperative loop or background daemon                │
    │      - cycle-start / cycle-end hooks                                 │
    │      - Trigger files for out-of-process events                       │
    │                                                                      │
    │   4. BUILT-IN TRANSPORT                                              │
    │      - Non-blocking sockets with selectors                           │
    │      - HTTP/1.1 keep-alive                                           │
    │      - WebSocket upgrades via the websockets library                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    ember/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m ember)
    ├── server.py            # Ember class and run loop
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Exceptions and warning categories
    ├── pipeline.py          # Request and WebSocket event pipelines
    ├── sessions.py          # Client id → WebSocket registry
    ├── triggers.py          # External event sources (trigger files)
    ├── transport.py         # Transport / Application interfaces
    ├── plugins.py           # AccessLogPlugin
    ├── logging.py           # setup_logging()
    ├── events/              # Handler stacks and the event registry
    ├── http/                # Request parsing, response types
    └── core/                # SocketTransport, Connection, WebSocketConnection

=============================================================================
QUICK START
=============================================================================

    from ember import Ember
    from ember.http import ok

    app = Ember()
    app.port = 8080

    @app.handler("request")
    def index(args):
        return ok({"hello": args["id"]})

    @app.handler("message")
    def echo(args):
        args["server"].send(args["message"], args["id"])

    app.ignite()

=============================================================================
"""

from .config import ServerConfig
from .errors import (
    ContractViolation,
    EmberError,
    InvalidPosition,
    OperationWarning,
    ProtocolViolation,
    ValidationError,
)
from .events import PROTECTED_EVENTS
from .http import HTTPRequest, HTTPResponse
from .plugins import AccessLogPlugin
from .server import Ember, default_client_id
from .triggers import DirectoryEventSource, EventSource, write_trigger

__version__ = "1.0.0"
__all__ = [
    "Ember",
    "ServerConfig",
    "default_client_id",
    "HTTPRequest",
    "HTTPResponse",
    "AccessLogPlugin",
    "EventSource",
    "DirectoryEventSource",
    "write_trigger",
    "PROTECTED_EVENTS",
    "EmberError",
    "ValidationError",
    "InvalidPosition",
    "ContractViolation",
    "ProtocolViolation",
    "OperationWarning",
]
