"""
=============================================================================
REQUEST AND WEBSOCKET PIPELINES
=============================================================================

The transport hands Ember a parsed request or an open WebSocket; these
pipelines thread it through the protected events.

=============================================================================
REQUEST FLOW
=============================================================================

    HTTPRequest
        │
        ├──► client id = converter(request)
        │
        ├──► "before-request"   {server, id, request}
        │       handler 1 → {"a": 1}
        │       handler 2 → {"a": 2, "b": 3}
        │       ─────────────────────────────
        │       patch     = {"a": 2, "b": 3}     (left to right, later wins)
        │
        ├──► "request"          {a: 2, b: 3, server, id, request}
        │       handler 1 → "first"
        │       handler 2 → "second"             ← LAST in stack order wins
        │
        ├──► "after-request"    {server, id, request, response: "second"}
        │
        └──► return "second"    (untouched; the transport serializes it)

The core keys (server, id, request) are applied after the patch, so a
before-request handler can add arguments but cannot swap the request.

=============================================================================
WEBSOCKET FLOW
=============================================================================

    open      register ws under its client id, wire the two callbacks
    message   "before-message" {server, id, binary, message, request}
              patches merged onto {binary, message}
              "message"        {binary', message', ..., server, id, request}
              "after-message"  {server, id, binary', message', request}
    close     "websocket-closed" {server, id, request}
              then drop the registry entry if it is still this socket

=============================================================================
FAILURE CONTAINMENT
=============================================================================

HandlerStack.dispatch() propagates exceptions; containment happens here,
once per unit of work:

    request  → traceback logged, 500 fallback response,
               after-request still fires with the fallback
    message  → traceback logged, message dropped, socket stays open
    header   → traceback logged, 500 fallback short-circuits the request
    client id converter failure
             → traceback logged; a request or header gets the 500
               fallback with no events fired, a WebSocket is closed
               without being registered

=============================================================================
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from .events.registry import EventRegistry
from .http.request import HTTPRequest
from .http.response import internal_error
from .sessions import SessionRegistry
from .transport import WebSocket


logger = logging.getLogger(__name__)


def merge_patches(results: List[Any]) -> Dict[str, Any]:
    """
    Fold handler results into one argument patch, left to right.

    None results are skipped; anything that is not a mapping is logged and
    ignored.
    """
    patch: Dict[str, Any] = {}
    for result in results:
        if result is None:
            continue
        if not isinstance(result, Mapping):
            logger.warning(
                f"Ignoring non-mapping argument patch of type {type(result).__name__}"
            )
            continue
        patch.update(result)
    return patch


class RequestPipeline:
    """Runs before-request, request and after-request for each HTTP request."""

    def __init__(
        self,
        server: Any,
        registry: EventRegistry,
        identify: Callable[[HTTPRequest], str],
    ):
        self._server = server
        self._registry = registry
        self._identify = identify

    def _core_args(self, request: HTTPRequest) -> Dict[str, Any]:
        return {"server": self._server, "id": self._identify(request), "request": request}

    def handle(self, request: HTTPRequest) -> Any:
        """Produce the response for one request."""
        try:
            core = self._core_args(request)
        except Exception as e:
            logger.exception(f"Client id converter failed for {request.path}: {e}")
            return internal_error()

        try:
            patch = merge_patches(self._registry.dispatch("before-request", core))
            results = self._registry.dispatch("request", {**patch, **core})
            response = results[-1] if results else None
        except Exception as e:
            logger.exception(f"[{core['id']}] Request handler error: {e}")
            response = internal_error()

        try:
            self._registry.dispatch("after-request", {**core, "response": response})
        except Exception as e:
            logger.exception(f"[{core['id']}] after-request handler error: {e}")

        return response

    def headers(self, request: HTTPRequest) -> Optional[Any]:
        """
        Fire "header" once the request head is parsed.

        Returns the last non-None handler result, which the transport sends
        instead of reading the body; None lets the request continue.
        """
        try:
            core = self._core_args(request)
        except Exception as e:
            logger.exception(f"Client id converter failed for {request.path}: {e}")
            return internal_error()
        try:
            results = self._registry.dispatch("header", core)
        except Exception as e:
            logger.exception(f"[{core['id']}] header handler error: {e}")
            return internal_error()
        for result in reversed(results):
            if result is not None:
                return result
        return None


class WebSocketPipeline:
    """Registers WebSocket connections and routes their traffic through events."""

    def __init__(
        self,
        server: Any,
        registry: EventRegistry,
        sessions: SessionRegistry,
        identify: Callable[[HTTPRequest], str],
    ):
        self._server = server
        self._registry = registry
        self._sessions = sessions
        self._identify = identify

    def open(self, ws: WebSocket) -> Optional[str]:
        """
        Register a freshly opened connection and return its client id.

        A connection the converter cannot identify is closed and None
        returned.
        """
        try:
            client_id = self._identify(ws.request)
        except Exception as e:
            logger.exception(f"Client id converter failed, closing WebSocket: {e}")
            ws.close()
            return None

        self._sessions.register(client_id, ws)
        logger.debug(f"[{client_id}] WebSocket opened")

        ws.on_message(lambda binary, message: self.message(ws, client_id, binary, message))
        ws.on_close(lambda: self.closed(ws, client_id))
        return client_id

    def message(self, ws: WebSocket, client_id: str, binary: bool, message: Any) -> None:
        core = {"server": self._server, "id": client_id, "request": ws.request}
        try:
            patch = merge_patches(self._registry.dispatch(
                "before-message", {**core, "binary": binary, "message": message},
            ))
            args = {"binary": binary, "message": message, **patch, **core}
            self._registry.dispatch("message", args)
            self._registry.dispatch("after-message", {
                **core, "binary": args["binary"], "message": args["message"],
            })
        except Exception as e:
            logger.exception(f"[{client_id}] Message handler error, message dropped: {e}")

    def closed(self, ws: WebSocket, client_id: str) -> None:
        try:
            self._registry.dispatch("websocket-closed", {
                "server": self._server, "id": client_id, "request": ws.request,
            })
        except Exception as e:
            logger.exception(f"[{client_id}] websocket-closed handler error: {e}")
        finally:
            self._sessions.discard(client_id, ws)
            logger.debug(f"[{client_id}] WebSocket closed")
