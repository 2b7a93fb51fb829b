"""
EmployeeTransferService -- creates gated employee changes.

Responsibility:
    Records a transfer, mutation or rotation for an employee with its
    before/after snapshots, starts the approval chain for it, and applies it
    straight away when no approval is configured and the effective date has
    already arrived.

Architecture position:
    Kernel > Services.  May import from domain/, models/ and sibling
    services.

Failure modes:
    - EmployeeNotFoundError if the employee does not exist.
    - ValueError for an unknown change type or an unknown target field.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import (
    EMPLOYEE_TRANSFER_KIND,
    ActorContext,
    ChainStartResult,
    ChangeType,
    EntityRef,
)
from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.exceptions import EmployeeNotFoundError
from hrms_kernel.logging_config import get_logger
from hrms_kernel.models.organization import EMPLOYEE_ASSIGNMENT_FIELDS, EmployeeModel
from hrms_kernel.models.requests import EmployeeTransferModel
from hrms_kernel.services.approval_chain import ApprovalChain
from hrms_kernel.services.effect_applier import EffectApplier

logger = get_logger("services.transfer_service")


def _snapshot(values: dict[str, Any]) -> dict[str, str | None]:
    return {
        field: str(value) if value is not None else None
        for field, value in values.items()
    }


class EmployeeTransferService:
    """Write-side entry point for gated employee changes."""

    def __init__(
        self,
        session: Session,
        chain: ApprovalChain,
        applier: EffectApplier,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._chain = chain
        self._applier = applier
        self._clock = clock or SystemClock()

    def request_transfer(
        self,
        employee_id: UUID,
        change_type: ChangeType | str,
        to_fields: dict[str, UUID | None],
        effective_date: date,
        actor: ActorContext,
        change_reason: str | None = None,
        approval_line: str | None = None,
    ) -> tuple[EmployeeTransferModel, ChainStartResult]:
        """Record the change and start its approval chain.

        ``to_fields`` is keyed by employee assignment field name
        (``position_id``, ``department_id``, ...).  Fields left out keep
        their current value.
        """
        change_type = ChangeType(change_type)
        unknown = set(to_fields) - set(EMPLOYEE_ASSIGNMENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown assignment fields: {sorted(unknown)}")

        employee = self._session.get(EmployeeModel, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        before = {field: getattr(employee, field) for field in EMPLOYEE_ASSIGNMENT_FIELDS}
        after = dict(before)
        after.update({k: v for k, v in to_fields.items() if v is not None})

        change = EmployeeTransferModel(
            employee_id=employee.id,
            change_type=change_type.value,
            to_position_id=to_fields.get("position_id"),
            to_level_id=to_fields.get("level_id"),
            to_department_id=to_fields.get("department_id"),
            to_shift_id=to_fields.get("shift_id"),
            to_employment_status_id=to_fields.get("employment_status_id"),
            change_reason=change_reason,
            effective_date=effective_date,
            snapshot_before=_snapshot(before),
            snapshot_after=_snapshot(after),
            initiated_by_id=actor.user_id,
            approval_line=approval_line,
            created_at=self._clock.now(),
        )
        self._session.add(change)
        self._session.flush()

        logger.info(
            "gated_change_requested",
            extra={
                "change_id": str(change.id),
                "employee_id": str(employee.id),
                "change_type": change_type.value,
                "effective_date": effective_date,
            },
        )

        result = self._chain.start(EntityRef(EMPLOYEE_TRANSFER_KIND, change.id), actor)
        if result.auto_approved and change.applied_at is None:
            # No layers configured: due purely on the effective date.
            self._applier.apply(change.id, actor)
        return change, result
