"""
=============================================================================
EVENT ENGINE
=============================================================================

Everything an Ember server does is expressed as events:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ HANDLER STACK (stack.py)                                            │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Ordered (id, handler) pairs for ONE event name                      │
    │   • 1-based positional insert                                       │
    │   • removal by id                                                   │
    │   • ordered dispatch returning every handler's result               │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ EVENT REGISTRY (registry.py)                                        │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Event name → HandlerStack, handler id → event name                  │
    │   • lazy stack creation                                             │
    │   • globally unique handler ids                                     │
    │   • the set of protected lifecycle event names                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .stack import Handler, HandlerStack, Payload
from .registry import EventRegistry, PROTECTED_EVENTS, is_protected

__all__ = [
    "Handler",
    "HandlerStack",
    "Payload",
    "EventRegistry",
    "PROTECTED_EVENTS",
    "is_protected",
]
