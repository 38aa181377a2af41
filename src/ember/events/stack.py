"""
=============================================================================
HANDLER STACK
=============================================================================

An ordered list of (id, handler) pairs bound to one event name.

=============================================================================
POSITIONAL INSERTION
=============================================================================

Positions are 1-based, like a stack printed top to bottom:

    stack.add(a, "id-a")          [a]
    stack.add(b, "id-b")          [a, b]
    stack.add(c, "id-c", pos=1)   [c, a, b]       ← c shifts a and b down
    stack.add(d, "id-d", pos=99)  [c, a, b, d]    ← out of range appends
    stack.add(e, "id-e", pos=0)   InvalidPosition

=============================================================================
DISPATCH
=============================================================================

dispatch() calls every handler in stack order and collects what each one
returned. It does not look at the values: the request pipeline keeps the
last one, the before-* events merge the mappings, lifecycle events ignore
them. That policy belongs to the caller.

    stack.dispatch({"server": app})  →  [result_c, result_a, result_b, result_d]

Each handler receives its own shallow copy of the payload, so one handler
rebinding a key cannot leak into the next handler's view.

=============================================================================
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..errors import InvalidPosition


Payload = Dict[str, Any]
Handler = Callable[[Payload], Any]


class HandlerStack:
    """
    Ordered handlers for a single event.

    Not thread-safe. Blocking mode only ever touches it from one thread;
    daemon mode leaves synchronization to the embedding application.
    """

    def __init__(self):
        self._entries: List[Tuple[str, Handler]] = []

    def add(self, handler: Handler, id: str, pos: Optional[int] = None) -> None:
        """
        Insert a handler.

        Args:
            handler: Callable taking one payload mapping.
            id: Identifier used to remove the handler later.
            pos: 1-based position. None or past the end appends.

        Raises:
            InvalidPosition: If pos < 1.
        """
        if pos is None or pos > len(self._entries):
            self._entries.append((id, handler))
            return
        if pos < 1:
            raise InvalidPosition(pos)
        self._entries.insert(pos - 1, (id, handler))

    def remove(self, id: str) -> None:
        """Remove the handler with this id. Unknown ids are ignored."""
        self._entries = [entry for entry in self._entries if entry[0] != id]

    def dispatch(self, args: Optional[Payload] = None) -> List[Any]:
        """
        Call every handler in order.

        Exceptions raised by a handler propagate unchanged and stop the
        dispatch; containment is decided by the pipelines.

        Returns:
            Each handler's return value, in stack order.
        """
        args = args or {}
        # Snapshot so a handler calling on()/off() cannot reorder this pass.
        entries = list(self._entries)
        return [handler(dict(args)) for _, handler in entries]

    def ids(self) -> List[str]:
        return [id for id, _ in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Handler]:
        return (handler for _, handler in self._entries)

    def __contains__(self, id: object) -> bool:
        return any(entry_id == id for entry_id, _ in self._entries)

    def __repr__(self) -> str:
        return f"HandlerStack({len(self._entries)} handlers)"
