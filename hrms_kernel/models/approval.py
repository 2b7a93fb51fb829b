"""
Module: hrms_kernel.models.approval
Responsibility: ORM persistence for approvable types, their ordered approver
    layers, and the per-layer Approval records.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Approval status values limited by a check constraint; service layer
      enforces the pending -> approved | rejected transition.
    - A decided Approval cannot change status again and is never deleted
      (ORM listeners below).
    - Covering indexes for "pending for this approvable and approver" and
      the approver's inbox.

Failure modes:
    - ImmutabilityViolationError on terminal status rewrite or delete.

Audit relevance:
    Approvals are the audit trail of who signed off which layer and when.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_kernel.db.base import Base, UUIDString
from hrms_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from hrms_kernel.domain.approval import ApprovalRecord, ApproverLayerDef


class ApprovableTypeModel(Base):
    """Reference data naming one approvable kind (type tag)."""

    __tablename__ = "approvable_types"

    kind: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    layers: Mapped[list["ApproverLayerModel"]] = relationship(
        "ApproverLayerModel",
        back_populates="approvable_type",
        order_by="ApproverLayerModel.level",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.kind

    def __repr__(self) -> str:
        return f"<ApprovableType {self.kind}>"


class ApproverLayerModel(Base):
    """One ordered approval stage for an approvable type."""

    __tablename__ = "approver_layers"

    __table_args__ = (
        CheckConstraint("level > 0", name="ck_approver_layers_positive_level"),
        CheckConstraint(
            "approver_kind IN ('user', 'role', 'employee', 'approval_line')",
            name="ck_approver_layers_valid_kind",
        ),
        Index(
            "ix_approver_layers_type_level",
            "approvable_type_id", "is_active", "level",
        ),
    )

    approvable_type_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approvable_types.id"), nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    approver_ref_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    approvable_type: Mapped[ApprovableTypeModel] = relationship(
        "ApprovableTypeModel", back_populates="layers", lazy="joined",
    )

    def __repr__(self) -> str:
        return f"<ApproverLayer level={self.level} kind={self.approver_kind}>"

    def to_dto(self) -> ApproverLayerDef:
        """Convert ORM model to frozen domain DTO."""
        from hrms_kernel.domain.approval import ApproverKind, ApproverLayerDef

        return ApproverLayerDef(
            layer_id=self.id,
            approvable_kind=self.approvable_type.kind,
            level=self.level,
            approver_kind=ApproverKind(self.approver_kind),
            approver_ref_id=self.approver_ref_id,
            is_active=self.is_active,
            description=self.description,
        )


class ApprovalModel(Base):
    """
    One approval instance per (approvable entity, layer traversed).

    Contract:
        Created pending by the approval chain; mutated exactly once to
        approved or rejected; never deleted.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approvals_valid_status",
        ),
        Index(
            "ix_approvals_approvable_status",
            "approvable_kind", "approvable_id", "status",
        ),
        Index(
            "ix_approvals_approver_status",
            "approver_id", "status", "created_at",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    approvable_kind: Mapped[str] = mapped_column(String(100), nullable=False)
    approvable_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approver_layer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approver_layers.id"), nullable=True,
    )
    approver_kind: Mapped[str] = mapped_column(String(30), nullable=False, default="user")
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sender_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)
    sender_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    layer: Mapped[ApproverLayerModel | None] = relationship(
        "ApproverLayerModel", lazy="joined",
    )

    @property
    def level(self) -> int | None:
        return self.layer.level if self.layer is not None else None

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} "
            f"{self.approvable_kind}:{self.approvable_id} "
            f"status={self.status}>"
        )

    def to_dto(self) -> ApprovalRecord:
        """Convert ORM model to frozen domain DTO."""
        from hrms_kernel.domain.approval import (
            ApprovalRecord,
            ApprovalStatus,
            EntityRef,
        )

        sender = None
        if self.sender_id is not None:
            sender = EntityRef(self.sender_kind or "user", self.sender_id)

        return ApprovalRecord(
            approval_id=self.id,
            approvable=EntityRef(self.approvable_kind, self.approvable_id),
            layer_id=self.approver_layer_id,
            level=self.level,
            status=ApprovalStatus(self.status),
            approver=EntityRef(self.approver_kind, self.approver_id),
            sender=sender,
            created_at=self.created_at,
            decided_at=self.decided_at,
            decided_by_id=self.decided_by_id,
        )


# =============================================================================
# ORM-Level Immutability for decided Approvals
# =============================================================================


_TERMINAL_STATUSES = frozenset({"approved", "rejected"})


@event.listens_for(ApprovalModel, "before_update")
def prevent_decided_approval_update(mapper, connection, target):
    """A decided approval keeps its status forever."""
    history = inspect(target).attrs.status.history
    if not history.deleted:
        return
    previous = history.deleted[0]
    if previous in _TERMINAL_STATUSES:
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason=f"status already {previous}",
        )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Approvals are audit trail and are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="approvals are never deleted",
    )
