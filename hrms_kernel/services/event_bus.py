"""
ApprovalEventBus -- explicit listener registration for engine events.

Responsibility:
    Delivers the events the approval chain and the effect applier publish
    (``ApprovalRequested``, ``ApprovalDecided``, ``ChainCompleted``,
    ``GatedChangeApplied``) to the listeners registered for their type.

Architecture position:
    Kernel > Services.  May import from domain/.

Invariants enforced:
    - Delivery is synchronous and in registration order, inside the
      publisher's transaction.  A listener that writes (the gated-effect
      listener) therefore commits or rolls back together with the decision
      that triggered it.
    - Nothing is driven by ORM or database hooks; publishing is an explicit
      call from the engine.

Failure modes:
    - Listener exceptions propagate to the publisher's caller.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable

from hrms_kernel.domain.events import ApprovalEvent
from hrms_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

Listener = Callable[[ApprovalEvent], None]


class ApprovalEventBus:
    """In-process, synchronous publish/subscribe for approval events."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = defaultdict(list)

    def subscribe(self, event_type: type, listener: Listener) -> None:
        self._listeners[event_type].append(listener)

    def unsubscribe(self, event_type: type, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listeners_for(self, event_type: type) -> list[Listener]:
        return list(self._listeners.get(event_type, []))

    def publish(self, event: ApprovalEvent) -> None:
        listeners = self.listeners_for(type(event))
        logger.debug(
            "event_published",
            extra={
                "event_type": type(event).__name__,
                "listener_count": len(listeners),
            },
        )
        for listener in listeners:
            listener(event)
