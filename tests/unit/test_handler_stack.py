"""
Unit tests for HandlerStack.
"""

import pytest

from ember.errors import InvalidPosition
from ember.events import HandlerStack


def returning(value):
    return lambda args: value


class TestHandlerStackAdd:
    """Tests for positional insertion."""

    def test_add_appends_without_position(self):
        """Omitting pos appends in registration order."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")
        stack.add(returning("b"), "id-b")

        assert stack.ids() == ["id-a", "id-b"]
        assert stack.dispatch() == ["a", "b"]

    def test_add_at_position_shifts_entries_down(self):
        """pos=p puts the handler at p and pushes entries at >= p down."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")
        stack.add(returning("b"), "id-b")
        stack.add(returning("c"), "id-c", pos=2)
        stack.add(returning("d"), "id-d", pos=1)

        assert stack.ids() == ["id-d", "id-a", "id-c", "id-b"]
        assert stack.dispatch() == ["d", "a", "c", "b"]

    def test_add_out_of_range_appends(self):
        """A position past the end behaves like append."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")
        stack.add(returning("z"), "id-z", pos=99)

        assert stack.ids() == ["id-a", "id-z"]

    def test_add_position_equal_to_length_inserts_before_last(self):
        """pos == len(stack) is still in range."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")
        stack.add(returning("b"), "id-b")
        stack.add(returning("x"), "id-x", pos=2)

        assert stack.ids() == ["id-a", "id-x", "id-b"]

    @pytest.mark.parametrize("pos", [0, -1, -10])
    def test_add_below_one_raises(self, pos):
        """Positions are 1-based; anything lower is rejected."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")

        with pytest.raises(InvalidPosition):
            stack.add(returning("x"), "id-x", pos=pos)

        assert stack.ids() == ["id-a"]

    def test_add_zero_on_empty_stack_raises(self):
        """Even an empty stack rejects pos=0."""
        with pytest.raises(InvalidPosition):
            HandlerStack().add(returning("x"), "id-x", pos=0)


class TestHandlerStackRemove:
    """Tests for removal by id."""

    def test_remove_only_that_handler(self):
        """Removing one id leaves the others in order."""
        stack = HandlerStack()
        for name in "abc":
            stack.add(returning(name), f"id-{name}")

        stack.remove("id-b")

        assert stack.ids() == ["id-a", "id-c"]
        assert stack.dispatch() == ["a", "c"]
        assert "id-b" not in stack

    def test_remove_unknown_id_is_noop(self):
        """Unknown ids are ignored."""
        stack = HandlerStack()
        stack.add(returning("a"), "id-a")

        stack.remove("nope")

        assert len(stack) == 1


class TestHandlerStackDispatch:
    """Tests for ordered dispatch."""

    def test_dispatch_passes_payload(self):
        """Every handler sees the payload keys."""
        seen = []
        stack = HandlerStack()
        stack.add(lambda args: seen.append(args["x"]), "one")
        stack.add(lambda args: seen.append(args["x"] * 2), "two")

        stack.dispatch({"x": 21})

        assert seen == [21, 42]

    def test_dispatch_returns_results_uninterpreted(self):
        """Return values come back as-is, None included."""
        stack = HandlerStack()
        stack.add(returning(None), "none")
        stack.add(returning({"a": 1}), "patch")
        stack.add(returning("text"), "text")

        assert stack.dispatch() == [None, {"a": 1}, "text"]

    def test_dispatch_empty_stack(self):
        """An empty stack returns an empty list."""
        assert HandlerStack().dispatch({"x": 1}) == []

    def test_handlers_get_independent_copies(self):
        """Rebinding a key in one handler is invisible to the next."""
        def rebinding(args):
            args["x"] = "changed"

        seen = []
        stack = HandlerStack()
        stack.add(rebinding, "rebind")
        stack.add(lambda args: seen.append(args["x"]), "observe")

        payload = {"x": "original"}
        stack.dispatch(payload)

        assert seen == ["original"]
        assert payload == {"x": "original"}

    def test_exceptions_propagate(self):
        """A failing handler stops dispatch and raises to the caller."""
        calls = []

        def boom(args):
            raise RuntimeError("boom")

        stack = HandlerStack()
        stack.add(boom, "boom")
        stack.add(lambda args: calls.append("after"), "after")

        with pytest.raises(RuntimeError):
            stack.dispatch()
        assert calls == []

    def test_mutation_during_dispatch_does_not_affect_current_pass(self):
        """Adding a handler mid-dispatch takes effect next time."""
        stack = HandlerStack()
        stack.add(lambda args: stack.add(returning("late"), "late"), "adder")

        assert stack.dispatch() == [None]
        assert stack.dispatch()[-1] == "late"
