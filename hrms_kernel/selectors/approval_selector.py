"""
Module: hrms_kernel.selectors.approval_selector
Responsibility: Read queries over Approval records: the approver's inbox,
    an entity's approval history, and the status predicates the chain and
    the effect gate are built on.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import exists, func, select

from hrms_kernel.domain.approval import ApprovalRecord, ApprovalStatus, EntityRef
from hrms_kernel.models.approval import (
    ApprovableTypeModel,
    ApprovalModel,
    ApproverLayerModel,
)
from hrms_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector):
    """Read-only queries over approvals."""

    def approvals_for(self, ref: EntityRef) -> list[ApprovalRecord]:
        """All approvals of one approvable entity, oldest first."""
        models = self.session.execute(
            select(ApprovalModel).where(
                ApprovalModel.approvable_kind == ref.kind,
                ApprovalModel.approvable_id == ref.id,
            ).order_by(ApprovalModel.created_at, ApprovalModel.id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def pending_for_approver(self, user_id: UUID) -> list[ApprovalRecord]:
        """The approver's inbox: pending approvals assigned to them."""
        models = self.session.execute(
            select(ApprovalModel).where(
                ApprovalModel.approver_id == user_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            ).order_by(ApprovalModel.created_at, ApprovalModel.id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def status_counts(self, ref: EntityRef) -> dict[ApprovalStatus, int]:
        """Number of approvals per status for one entity."""
        rows = self.session.execute(
            select(ApprovalModel.status, func.count())
            .where(
                ApprovalModel.approvable_kind == ref.kind,
                ApprovalModel.approvable_id == ref.id,
            )
            .group_by(ApprovalModel.status)
        ).all()
        counts = {status: 0 for status in ApprovalStatus}
        for status, count in rows:
            counts[ApprovalStatus(status)] = count
        return counts

    def has_pending_for(self, ref: EntityRef, approver_id: UUID) -> bool:
        """Is there already a pending approval for this exact person?"""
        return bool(self.session.execute(
            select(exists().where(
                ApprovalModel.approvable_kind == ref.kind,
                ApprovalModel.approvable_id == ref.id,
                ApprovalModel.approver_id == approver_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            ))
        ).scalar())

    def has_status(self, ref: EntityRef, status: ApprovalStatus) -> bool:
        return bool(self.session.execute(
            select(exists().where(
                ApprovalModel.approvable_kind == ref.kind,
                ApprovalModel.approvable_id == ref.id,
                ApprovalModel.status == status.value,
            ))
        ).scalar())

    def furthest_approved(self, ref: EntityRef) -> ApprovalRecord | None:
        """Approved approval of an entity at the highest layer level.

        Timestamps can tie under a fixed clock, so the layer level decides
        and the decision time only breaks ties between equal levels.
        """
        approved = [
            record for record in self.approvals_for(ref)
            if record.status == ApprovalStatus.APPROVED
        ]
        if not approved:
            return None
        return max(
            approved,
            key=lambda r: (r.level or 0, r.decided_at or r.created_at),
        )

    def highest_active_level(self, kind: str) -> int | None:
        """Level of the last active layer configured for ``kind``."""
        return self.session.execute(
            select(func.max(ApproverLayerModel.level))
            .join(ApprovableTypeModel, ApproverLayerModel.approvable_type_id == ApprovableTypeModel.id)
            .where(
                ApprovableTypeModel.kind == kind,
                ApprovableTypeModel.is_active.is_(True),
                ApproverLayerModel.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def is_fully_approved(self, ref: EntityRef) -> bool:
        """At least one approval, none pending, none rejected, and the
        approved approvals reach the last active layer.

        The last condition keeps a chain that stalled after an approval
        (next approver unresolvable) from counting as complete.
        """
        counts = self.status_counts(ref)
        if counts[ApprovalStatus.APPROVED] == 0:
            return False
        if counts[ApprovalStatus.PENDING] or counts[ApprovalStatus.REJECTED]:
            return False

        top = self.highest_active_level(ref.kind)
        if top is None:
            return True
        furthest = self.furthest_approved(ref)
        return furthest is not None and (furthest.level or 0) >= top
