"""
Approval engine events (``hrms_kernel.domain.events``).

The engine announces what it did through these frozen events, published
explicitly from ``ApprovalChain.start`` / ``on_decision`` and
``EffectApplier.apply``.  Listeners are registered on the event bus;
nothing is driven by storage-layer callbacks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from hrms_kernel.domain.approval import ApprovalStatus, EntityRef


@dataclass(frozen=True)
class ApprovalRequested:
    """A pending Approval was created for a resolved approver."""

    approval_id: UUID
    approvable: EntityRef
    level: int | None
    approver: EntityRef
    sender: EntityRef | None
    reason: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class ApprovalDecided:
    """An approver moved an Approval from pending to a terminal status."""

    approval_id: UUID
    approvable: EntityRef
    level: int | None
    decision: ApprovalStatus
    decider: EntityRef | None
    sender: EntityRef | None
    occurred_at: datetime


@dataclass(frozen=True)
class ChainCompleted:
    """Every configured layer signed off (or none were configured)."""

    approvable: EntityRef
    auto_approved: bool
    occurred_at: datetime


@dataclass(frozen=True)
class GatedChangeApplied:
    """A gated change was committed onto its target entity."""

    change: EntityRef
    target: EntityRef
    effective_date: date
    applied_at: datetime


ApprovalEvent = ApprovalRequested | ApprovalDecided | ChainCompleted | GatedChangeApplied
