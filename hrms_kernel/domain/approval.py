"""
Approval domain types (``hrms_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the layered approval engine.  Defines the approval
lifecycle, approver kinds, the tagged approvable reference, the explicit
actor context, layer and approval records, and the chain outcomes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Approval lifecycle -- ``APPROVAL_TRANSITIONS`` defines the only valid
  status transitions.  ``approved`` and ``rejected`` are terminal.
* Tagged references -- an approvable or approver is always a
  ``(kind, id)`` pair, never a language-level polymorphic pointer.
* Explicit actor -- every engine call receives an ``ActorContext``; the
  engine never reads a global "current user".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval record lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class ApproverKind(str, Enum):
    """How an approver layer names its approver."""

    USER = "user"
    ROLE = "role"
    EMPLOYEE = "employee"
    APPROVAL_LINE = "approval_line"

    @property
    def requires_reference(self) -> bool:
        """Fixed kinds point at a stored record; approval-line is dynamic."""
        return self is not ApproverKind.APPROVAL_LINE


# Role whose members are contextual to the requester, not a fixed pool.
MANAGER_ROLE_NAME = "manager"


class ChainState(str, Enum):
    """Aggregate state of one approvable entity's chain."""

    NOT_REQUIRED = "not_required"
    NOT_STARTED = "not_started"
    PENDING = "pending"
    REJECTED = "rejected"
    APPROVED = "approved"


class ChangeType(str, Enum):
    """Kinds of gated employee change."""

    TRANSFER = "transfer"
    MUTATION = "mutation"
    ROTATION = "rotation"


# =========================================================================
# References and actor context
# =========================================================================


@dataclass(frozen=True)
class EntityRef:
    """Tagged reference ``{kind, id}`` to any approvable or approver record."""

    kind: str
    id: UUID

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


USER_KIND = "user"


@dataclass(frozen=True)
class ActorContext:
    """Who initiated an engine call.

    ``user_id`` is None only for system actors (scheduled sweeps, bootstrap).
    System actors may drive decisions without being the resolved approver.
    """

    user_id: UUID | None
    is_system: bool = False
    correlation_id: str | None = None

    @classmethod
    def user(cls, user_id: UUID, correlation_id: str | None = None) -> ActorContext:
        return cls(user_id=user_id, is_system=False, correlation_id=correlation_id)

    @classmethod
    def system(cls, correlation_id: str | None = None) -> ActorContext:
        return cls(user_id=None, is_system=True, correlation_id=correlation_id)

    @property
    def ref(self) -> EntityRef | None:
        if self.user_id is None:
            return None
        return EntityRef(USER_KIND, self.user_id)


# =========================================================================
# Layer and approval records
# =========================================================================


@dataclass(frozen=True)
class ApproverLayerDef:
    """One ordered stage of required approval for an approvable kind."""

    layer_id: UUID
    approvable_kind: str
    level: int
    approver_kind: ApproverKind
    approver_ref_id: UUID | None = None
    is_active: bool = True
    description: str | None = None


@dataclass(frozen=True)
class ApprovalRecord:
    """Frozen view of a persisted Approval."""

    approval_id: UUID
    approvable: EntityRef
    layer_id: UUID | None
    level: int | None
    status: ApprovalStatus
    approver: EntityRef
    sender: EntityRef | None
    created_at: datetime
    decided_at: datetime | None = None
    decided_by_id: UUID | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES


@dataclass(frozen=True)
class ResolutionContext:
    """Everything an approver strategy may read about the originating request."""

    approvable: EntityRef
    requester_employee_id: UUID | None = None
    explicit_approval_line: str | None = None


# =========================================================================
# Chain outcomes
# =========================================================================


@dataclass(frozen=True)
class ChainStartResult:
    """Outcome of starting (or re-evaluating) a chain."""

    approvable: EntityRef
    state: ChainState
    created: ApprovalRecord | None = None
    stalled_level: int | None = None

    @property
    def auto_approved(self) -> bool:
        return self.state == ChainState.NOT_REQUIRED


@dataclass(frozen=True)
class DecisionOutcome:
    """Outcome of one approver decision.

    ``noop`` is True when the approval was already terminal; nothing was
    written and no events were emitted.
    """

    approval: ApprovalRecord
    state: ChainState
    noop: bool = False
    next_approval: ApprovalRecord | None = None
    stalled_level: int | None = None

    @property
    def chain_completed(self) -> bool:
        return self.state == ChainState.APPROVED


# =========================================================================
# Approvable kind tags
# =========================================================================

LEAVE_REQUEST_KIND = "leave_request"
OVERTIME_REQUEST_KIND = "overtime_request"
EXPENSE_CLAIM_KIND = "expense_claim"
EMPLOYEE_TRANSFER_KIND = "employee_transfer"
