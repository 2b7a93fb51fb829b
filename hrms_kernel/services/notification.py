"""
Approval notifications -- who hears about what, and when.

Responsibility:
    Turns engine events into notification payloads for an external
    ``NotificationPort``.  Two kinds are sent:

    * approval requested -- to the resolved approver, carrying the entity
      kind and id, layer level, requester and the (truncated) reason.
    * approval decided   -- to the original sender, carrying the entity kind
      and id, layer level, decision and decider.

    Transport (mail, push, in-app) is entirely the port's business.

Architecture position:
    Kernel > Services.  May import from domain/.

Failure modes:
    - A failing port is logged as ``notification_failed`` and does not undo
      the approval action that triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from hrms_kernel.domain.approval import EntityRef
from hrms_kernel.domain.events import ApprovalDecided, ApprovalRequested
from hrms_kernel.logging_config import get_logger
from hrms_kernel.services.event_bus import ApprovalEventBus

logger = get_logger("services.notification")

DEFAULT_REASON_MAX_LENGTH = 300

APPROVAL_REQUESTED = "approval_requested"
APPROVAL_DECIDED = "approval_decided"


@dataclass(frozen=True)
class ApprovalNotification:
    """Payload handed to the notification port."""

    event_type: str
    approvable_kind: str
    approvable_id: UUID
    level: int | None
    requester: EntityRef | None = None
    reason: str | None = None
    decision: str | None = None
    decider: EntityRef | None = None


@runtime_checkable
class NotificationPort(Protocol):
    """External delivery collaborator."""

    def notify(self, recipient_id: UUID, notification: ApprovalNotification) -> None:
        ...


def truncate_reason(reason: str | None, max_length: int = DEFAULT_REASON_MAX_LENGTH) -> str | None:
    if reason is None:
        return None
    if len(reason) <= max_length:
        return reason
    return reason[:max_length]


class LoggingNotificationPort:
    """Port that only writes a structured log line per notification."""

    def notify(self, recipient_id: UUID, notification: ApprovalNotification) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient_id": str(recipient_id),
                "event_type": notification.event_type,
                "approvable_kind": notification.approvable_kind,
                "approvable_id": str(notification.approvable_id),
                "layer_level": notification.level,
            },
        )


class NotificationDispatcher:
    """Event listener routing approval events to a notification port."""

    def __init__(
        self,
        port: NotificationPort,
        reason_max_length: int = DEFAULT_REASON_MAX_LENGTH,
    ) -> None:
        self._port = port
        self._reason_max_length = reason_max_length

    def register(self, bus: ApprovalEventBus) -> None:
        bus.subscribe(ApprovalRequested, self.on_requested)
        bus.subscribe(ApprovalDecided, self.on_decided)

    def on_requested(self, event: ApprovalRequested) -> None:
        notification = ApprovalNotification(
            event_type=APPROVAL_REQUESTED,
            approvable_kind=event.approvable.kind,
            approvable_id=event.approvable.id,
            level=event.level,
            requester=event.sender,
            reason=truncate_reason(event.reason, self._reason_max_length),
        )
        self._deliver(event.approver.id, notification)

    def on_decided(self, event: ApprovalDecided) -> None:
        if event.sender is None:
            logger.info(
                "notification_no_recipient",
                extra={
                    "approval_id": str(event.approval_id),
                    "event_type": APPROVAL_DECIDED,
                },
            )
            return
        notification = ApprovalNotification(
            event_type=APPROVAL_DECIDED,
            approvable_kind=event.approvable.kind,
            approvable_id=event.approvable.id,
            level=event.level,
            decision=event.decision.value,
            decider=event.decider,
        )
        self._deliver(event.sender.id, notification)

    def _deliver(self, recipient_id: UUID, notification: ApprovalNotification) -> None:
        try:
            self._port.notify(recipient_id, notification)
        except Exception:
            logger.exception(
                "notification_failed",
                extra={
                    "recipient_id": str(recipient_id),
                    "event_type": notification.event_type,
                    "approvable_id": str(notification.approvable_id),
                },
            )
