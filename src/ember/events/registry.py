"""
=============================================================================
EVENT REGISTRY
=============================================================================

Maps event names to HandlerStacks and handler ids back to their event.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         EVENT REGISTRY                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   _stacks                          _owners                          │
    │   ───────                          ───────                          │
    │   "request"  → HandlerStack        "3f2a…" → "request"              │
    │   "start"    → HandlerStack        "9c01…" → "request"              │
    │   "my-event" → HandlerStack        "b7e4…" → "start"                │
    │                                    "1d55…" → "my-event"             │
    │                                                                     │
    │   Stacks are created lazily on the first on() for a name.           │
    │   Ids are UUID4 strings, unique across every event.                 │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PROTECTED EVENTS
=============================================================================

The lifecycle events below are fired by the server itself. The registry
happily dispatches them (the server and the trigger poller use it for
that); refusing them on the public trigger() path is the server's job.

=============================================================================
"""

import logging
import uuid
from typing import Any, Dict, FrozenSet, List, Optional

from .stack import Handler, HandlerStack, Payload


logger = logging.getLogger(__name__)


PROTECTED_EVENTS: FrozenSet[str] = frozenset({
    "start",
    "resume",
    "end",
    "cycle-start",
    "cycle-end",
    "header",
    "before-request",
    "request",
    "after-request",
    "before-message",
    "message",
    "after-message",
    "websocket-closed",
})


def is_protected(event: str) -> bool:
    """Check whether an event name is reserved for the server lifecycle."""
    return event in PROTECTED_EVENTS


class EventRegistry:
    """Event name → HandlerStack, plus handler id → event name."""

    def __init__(self):
        self._stacks: Dict[str, HandlerStack] = {}
        self._owners: Dict[str, str] = {}

    def on(self, event: str, handler: Handler, pos: Optional[int] = None) -> str:
        """
        Register a handler and return its id.

        The stack is only mutated once the insert succeeds, so an
        InvalidPosition leaves no half-registered id behind.
        """
        if not callable(handler):
            raise TypeError(f"Handler for '{event}' must be callable, got {handler!r}")
        handler_id = str(uuid.uuid4())
        stack = self._stacks.get(event)
        if stack is None:
            stack = HandlerStack()
        stack.add(handler, handler_id, pos)
        self._stacks[event] = stack
        self._owners[handler_id] = event
        logger.debug(f"Registered handler {handler_id} on '{event}'")
        return handler_id

    def off(self, handler_id: str) -> None:
        """Remove a handler by id. Unknown ids are a no-op."""
        event = self._owners.pop(handler_id, None)
        if event is None:
            return
        self._stacks[event].remove(handler_id)
        logger.debug(f"Removed handler {handler_id} from '{event}'")

    def dispatch(self, event: str, args: Optional[Payload] = None) -> List[Any]:
        """
        Dispatch an event, protected or not.

        Returns an empty list when nothing is registered for the name.
        """
        stack = self._stacks.get(event)
        if stack is None:
            return []
        return stack.dispatch(args)

    def event_of(self, handler_id: str) -> Optional[str]:
        return self._owners.get(handler_id)

    def stack(self, event: str) -> Optional[HandlerStack]:
        return self._stacks.get(event)

    def events(self) -> List[str]:
        return [name for name, stack in self._stacks.items() if len(stack)]

    def __contains__(self, handler_id: object) -> bool:
        return handler_id in self._owners

    def __len__(self) -> int:
        return len(self._owners)
