"""
Module: hrms_kernel.selectors.due_item_selector
Responsibility: Finds gated changes that are due: not yet applied, not
    cancelled, effective on or before a given date, and whose chain is done.
    A chain is done when it is fully approved (at least one approval, none
    pending, none rejected, approvals reaching the last active layer) or
    when the kind has no active layers and the change carries no approvals.

Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Deterministic order: effective_date ascending, then id, so older due
      items are processed first and pagination is stable.
    - Keyset pagination (``after``) keeps every page bounded and never
      revisits an item that a previous page skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import and_, exists, func, not_, or_, select
from sqlalchemy.orm import aliased

from hrms_kernel.domain.approval import EMPLOYEE_TRANSFER_KIND, ApprovalStatus
from hrms_kernel.models.approval import (
    ApprovableTypeModel,
    ApprovalModel,
    ApproverLayerModel,
)
from hrms_kernel.models.requests import EmployeeTransferModel
from hrms_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class DueItem:
    """Summary of one due gated change."""

    change_id: UUID
    employee_id: UUID
    change_type: str
    effective_date: date
    to_position_id: UUID | None


class DueItemSelector(BaseSelector):
    """Read-only query for due gated changes."""

    kind = EMPLOYEE_TRANSFER_KIND

    def _approval_exists(self, status: ApprovalStatus | None = None):
        conditions = [
            ApprovalModel.approvable_kind == self.kind,
            ApprovalModel.approvable_id == EmployeeTransferModel.id,
        ]
        if status is not None:
            conditions.append(ApprovalModel.status == status.value)
        return exists().where(*conditions)

    def _active_layer_exists(self, above_level=None):
        conditions = [
            ApproverLayerModel.approvable_type_id == ApprovableTypeModel.id,
            ApprovableTypeModel.kind == self.kind,
            ApprovableTypeModel.is_active.is_(True),
            ApproverLayerModel.is_active.is_(True),
        ]
        if above_level is not None:
            conditions.append(ApproverLayerModel.level > above_level)
        return exists().where(*conditions)

    def _furthest_approved_level(self):
        layer = aliased(ApproverLayerModel)
        return (
            select(func.coalesce(func.max(layer.level), 0))
            .select_from(ApprovalModel)
            .join(layer, ApprovalModel.approver_layer_id == layer.id)
            .where(
                ApprovalModel.approvable_kind == self.kind,
                ApprovalModel.approvable_id == EmployeeTransferModel.id,
                ApprovalModel.status == ApprovalStatus.APPROVED.value,
            )
            .correlate(EmployeeTransferModel)
            .scalar_subquery()
        )

    def _due_conditions(self, as_of: date) -> list:
        fully_approved = and_(
            self._approval_exists(ApprovalStatus.APPROVED),
            not_(self._approval_exists(ApprovalStatus.PENDING)),
            not_(self._approval_exists(ApprovalStatus.REJECTED)),
            not_(self._active_layer_exists(above_level=self._furthest_approved_level())),
        )
        not_required = and_(
            not_(self._approval_exists()),
            not_(self._active_layer_exists()),
        )
        return [
            EmployeeTransferModel.applied_at.is_(None),
            EmployeeTransferModel.cancelled_at.is_(None),
            EmployeeTransferModel.effective_date <= as_of,
            or_(fully_approved, not_required),
        ]

    def due_page(
        self,
        as_of: date,
        limit: int,
        after: tuple[date, UUID] | None = None,
    ) -> list[DueItem]:
        """One page of due items, strictly after the ``after`` keyset cursor."""
        conditions = self._due_conditions(as_of)
        if after is not None:
            last_date, last_id = after
            conditions.append(or_(
                EmployeeTransferModel.effective_date > last_date,
                and_(
                    EmployeeTransferModel.effective_date == last_date,
                    EmployeeTransferModel.id > last_id,
                ),
            ))

        rows = self.session.execute(
            select(
                EmployeeTransferModel.id,
                EmployeeTransferModel.employee_id,
                EmployeeTransferModel.change_type,
                EmployeeTransferModel.effective_date,
                EmployeeTransferModel.to_position_id,
            )
            .where(*conditions)
            .order_by(EmployeeTransferModel.effective_date, EmployeeTransferModel.id)
            .limit(limit)
        ).all()

        return [
            DueItem(
                change_id=row.id,
                employee_id=row.employee_id,
                change_type=row.change_type,
                effective_date=row.effective_date,
                to_position_id=row.to_position_id,
            )
            for row in rows
        ]

    def count_due(self, as_of: date) -> int:
        return self.session.execute(
            select(func.count(EmployeeTransferModel.id)).where(
                *self._due_conditions(as_of)
            )
        ).scalar_one()
