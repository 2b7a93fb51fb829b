"""
Module: hrms_kernel.models.requests
Responsibility: ORM persistence for the approvable business entities:
    leave requests, overtime requests, expense claims, and the gated
    employee transfer/mutation/rotation.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - EmployeeTransferModel.applied_at is write-once: once stamped it is
      never cleared or rewritten, and the row is never deleted.
    - Each request points back at its employee; the approval chain reaches
      the requester through ``employee_id``.

Failure modes:
    - ImmutabilityViolationError on applied_at rewrite or delete.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_kernel.db.base import Base, UUIDString
from hrms_kernel.exceptions import ImmutabilityViolationError
from hrms_kernel.models.organization import EmployeeModel


class LeaveRequestModel(Base):
    """Leave request awaiting layered approval."""

    __tablename__ = "leave_requests"

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    leave_type: Mapped[str] = mapped_column(String(50), nullable=False, default="annual")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    employee: Mapped[EmployeeModel] = relationship("EmployeeModel")


class OvertimeRequestModel(Base):
    """Overtime request awaiting layered approval."""

    __tablename__ = "overtime_requests"

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    employee: Mapped[EmployeeModel] = relationship("EmployeeModel")


class ExpenseClaimModel(Base):
    """Expense (reimbursement) claim awaiting layered approval."""

    __tablename__ = "expense_claims"

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    employee: Mapped[EmployeeModel] = relationship("EmployeeModel")


class EmployeeTransferModel(Base):
    """
    Gated change of an employee's assignment (transfer, mutation, rotation).

    Contract:
        ``to_*`` columns are the "after" values the applier copies onto the
        employee.  ``snapshot_before``/``snapshot_after`` are captured at
        creation for audit only.  ``cancelled_at`` is reserved.

    Guarantees:
        - applied_at is null until the change is committed, then never
          changes again.
    """

    __tablename__ = "employee_transfers"

    __table_args__ = (
        CheckConstraint(
            "change_type IN ('transfer', 'mutation', 'rotation')",
            name="ck_employee_transfers_valid_type",
        ),
        Index("ix_employee_transfers_employee_effective", "employee_id", "effective_date"),
        Index("ix_employee_transfers_due", "applied_at", "effective_date"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    change_type: Mapped[str] = mapped_column(String(30), nullable=False, default="transfer")

    to_position_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_level_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_shift_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_employment_status_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    snapshot_before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    snapshot_after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    initiated_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    approval_line: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    employee: Mapped[EmployeeModel] = relationship("EmployeeModel")

    def after_values(self) -> dict[str, UUID | None]:
        """Assignment fields this change sets on the employee."""
        return {
            "position_id": self.to_position_id,
            "level_id": self.to_level_id,
            "department_id": self.to_department_id,
            "shift_id": self.to_shift_id,
            "employment_status_id": self.to_employment_status_id,
        }

    def __repr__(self) -> str:
        return (
            f"<EmployeeTransfer {self.id} {self.change_type} "
            f"effective={self.effective_date} applied={self.applied_at is not None}>"
        )


# =============================================================================
# ORM-Level Immutability for applied changes
# =============================================================================


@event.listens_for(EmployeeTransferModel, "before_update")
def prevent_applied_change_rewrite(mapper, connection, target):
    """applied_at is a terminal stamp."""
    history = inspect(target).attrs.applied_at.history
    if history.deleted and history.deleted[0] is not None:
        raise ImmutabilityViolationError(
            entity_type="EmployeeTransfer",
            entity_id=str(target.id),
            reason="already applied",
        )


@event.listens_for(EmployeeTransferModel, "before_delete")
def prevent_transfer_delete(mapper, connection, target):
    """Gated changes are audit trail; a new change supersedes an old one."""
    raise ImmutabilityViolationError(
        entity_type="EmployeeTransfer",
        entity_id=str(target.id),
        reason="gated changes are never deleted",
    )
