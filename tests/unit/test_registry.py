"""
Unit tests for EventRegistry and protected event names.
"""

import pytest

from ember.errors import InvalidPosition
from ember.events import EventRegistry, PROTECTED_EVENTS, is_protected


class TestEventRegistry:
    """Tests for registration, removal and dispatch."""

    def test_on_returns_unique_ids_across_events(self):
        """Ids never repeat, whichever event they belong to."""
        registry = EventRegistry()
        ids = [registry.on(event, lambda args: None) for event in ["a", "a", "b", "c", "b"]]

        assert len(set(ids)) == len(ids)
        assert registry.event_of(ids[0]) == "a"
        assert registry.event_of(ids[2]) == "b"

    def test_off_removes_exactly_that_handler(self):
        """off(id) removes one handler and dispatch never calls it again."""
        registry = EventRegistry()
        calls = []
        first = registry.on("ping", lambda args: calls.append("first"))
        registry.on("ping", lambda args: calls.append("second"))

        registry.off(first)
        registry.dispatch("ping", {})

        assert calls == ["second"]
        assert first not in registry

    def test_off_unknown_id_is_noop(self):
        """Unknown ids do not raise."""
        registry = EventRegistry()
        registry.on("ping", lambda args: None)

        registry.off("not-an-id")
        registry.off("not-an-id")

        assert len(registry) == 1

    def test_off_twice_is_noop(self):
        """Removing the same id again is harmless."""
        registry = EventRegistry()
        handler_id = registry.on("ping", lambda args: None)

        registry.off(handler_id)
        registry.off(handler_id)

        assert len(registry) == 0

    def test_dispatch_unknown_event_returns_empty(self):
        """Events nobody listens to dispatch to nothing."""
        assert EventRegistry().dispatch("nobody-home", {"x": 1}) == []

    def test_stack_created_lazily(self):
        """No stack exists until the first on()."""
        registry = EventRegistry()
        assert registry.stack("request") is None

        registry.on("request", lambda args: "ok")

        assert registry.stack("request") is not None
        assert registry.events() == ["request"]

    def test_positional_insert_through_registry(self):
        """pos is forwarded to the event's stack."""
        registry = EventRegistry()
        registry.on("request", lambda args: "A")
        registry.on("request", lambda args: "B", pos=1)

        assert registry.dispatch("request", {}) == ["B", "A"]

    def test_invalid_position_leaves_no_trace(self):
        """A rejected insert registers neither the id nor an empty stack."""
        registry = EventRegistry()

        with pytest.raises(InvalidPosition):
            registry.on("fresh", lambda args: None, pos=0)

        assert len(registry) == 0
        assert registry.stack("fresh") is None

    def test_non_callable_rejected(self):
        """Handlers must be callable."""
        with pytest.raises(TypeError):
            EventRegistry().on("request", "not callable")


class TestProtectedEvents:
    """Tests for the reserved lifecycle names."""

    def test_lifecycle_names_are_protected(self):
        """Every server-fired event is reserved."""
        for name in [
            "start", "resume", "end", "cycle-start", "cycle-end", "header",
            "before-request", "request", "after-request",
            "before-message", "message", "after-message", "websocket-closed",
        ]:
            assert is_protected(name)

        assert len(PROTECTED_EVENTS) == 13

    def test_user_names_are_not_protected(self):
        """Anything else is user-defined."""
        for name in ["reload", "broadcast", "Request", "cycle", ""]:
            assert not is_protected(name)
