"""
=============================================================================
ERRORS AND WARNINGS
=============================================================================

Every failure Ember reports is one of the types below. Some are raised,
some are emitted through the ``warnings`` module, because a few mistakes
are recoverable and should not take the embedding application down.

    ┌──────────────────────┬──────────────┬──────────────────────────────────┐
    │  Name                │  Delivered   │  When                            │
    ├──────────────────────┼──────────────┼──────────────────────────────────┤
    │  ValidationError     │  raised      │  Invalid config value            │
    │  InvalidPosition     │  raised      │  HandlerStack.add(pos < 1)       │
    │  ContractViolation   │  raised      │  Client id converter signature   │
    │  ProtocolViolation   │  warned      │  trigger() on a protected event  │
    │  OperationWarning    │  warned      │  ignite() on a running server    │
    └──────────────────────┴──────────────┴──────────────────────────────────┘

Catching them:

    import warnings
    from ember.errors import ProtocolViolation

    with warnings.catch_warnings():
        warnings.simplefilter("error", ProtocolViolation)
        app.trigger("request")   # now raises instead of warning

=============================================================================
"""


class EmberError(Exception):
    """Base class for errors raised by Ember."""


class ValidationError(EmberError, ValueError):
    """
    A configuration value was rejected.

    Raised by the setter itself, so the previous value is still in place
    when the caller catches it.
    """

    def __init__(self, field: str, value, reason: str):
        super().__init__(f"Invalid value for '{field}': {value!r} ({reason})")
        self.field = field
        self.value = value
        self.reason = reason


class InvalidPosition(EmberError, IndexError):
    """A handler was inserted at a position below 1."""

    def __init__(self, pos: int):
        super().__init__(f"Handler position must be >= 1, got {pos}")
        self.pos = pos


class ProtocolViolation(UserWarning):
    """
    The public API was used in a way the event protocol forbids.

    Triggering one of the protected lifecycle events from outside is the
    typical case. The call is skipped and server state is left alone.
    """


class ContractViolation(ProtocolViolation, TypeError):
    """A callable does not have the signature its slot requires."""


class OperationWarning(RuntimeWarning):
    """An operation was requested in a state where it has no effect."""
