"""
EffectGate + EffectApplier -- commit a gated change exactly once.

Responsibility:
    ``EffectGate.is_due`` decides whether a gated employee change may be
    committed: not applied, not cancelled, effective date reached, and the
    approval chain either fully approved or not required.
    ``EffectApplier.apply`` performs the commit: it copies the change's
    "after" fields onto the employee and stamps ``applied_at``.

Architecture position:
    Kernel > Services.  May import from domain/, models/ and sibling
    services.

Invariants enforced:
    - applied_at is set exactly once.  ``apply`` may be called redundantly
      (decision-triggered listener and the periodic sweep); every call after
      the first is a no-op returning False.
    - A change with a rejected approval is never applied.
    - Read-check-write runs in a SAVEPOINT with the change row and the
      employee row locked (SELECT ... FOR UPDATE), and the gate is re-checked
      after the locks are held.  Lock order is always change, then employee.

Failure modes:
    - GatedChangeNotFoundError / EmployeeNotFoundError for dangling ids.
    - A failed re-check is an outcome (``apply_skipped``), not an error.
    - Store failures roll back the savepoint and propagate.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import (
    EMPLOYEE_TRANSFER_KIND,
    ActorContext,
    ChainState,
    EntityRef,
)
from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.domain.events import ChainCompleted, GatedChangeApplied
from hrms_kernel.exceptions import EmployeeNotFoundError, GatedChangeNotFoundError
from hrms_kernel.logging_config import LogContext, get_logger
from hrms_kernel.models.organization import EmployeeModel
from hrms_kernel.models.requests import EmployeeTransferModel
from hrms_kernel.services.approval_chain import ApprovalChain
from hrms_kernel.services.event_bus import ApprovalEventBus

logger = get_logger("services.effect_applier")

EMPLOYEE_KIND = "employee"

_DUE_STATES = frozenset({ChainState.APPROVED, ChainState.NOT_REQUIRED})


class EffectGate:
    """Is a gated change ready to be committed?"""

    def __init__(self, chain: ApprovalChain, clock: Clock | None = None) -> None:
        self._chain = chain
        self._clock = clock or SystemClock()

    def skip_reason(
        self, change: EmployeeTransferModel, as_of: date | None = None,
    ) -> str | None:
        """Why ``change`` is not due on ``as_of`` (default today), or None."""
        if change.applied_at is not None:
            return "already_applied"
        if change.cancelled_at is not None:
            return "cancelled"
        if change.effective_date > (as_of or self._clock.today()):
            return "not_yet_effective"
        state = self._chain.chain_state(EntityRef(EMPLOYEE_TRANSFER_KIND, change.id))
        if state not in _DUE_STATES:
            return f"chain_{state.value}"
        return None

    def is_due(self, change: EmployeeTransferModel, as_of: date | None = None) -> bool:
        return self.skip_reason(change, as_of) is None


class EffectApplier:
    """Applies due gated changes onto their employee."""

    def __init__(
        self,
        session: Session,
        gate: EffectGate,
        bus: ApprovalEventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._gate = gate
        self._bus = bus or ApprovalEventBus()
        self._clock = clock or SystemClock()

    def apply(
        self, change_id: UUID, actor: ActorContext, as_of: date | None = None,
    ) -> bool:
        """Commit the change if it is due.  Returns True only if this call
        performed the mutation."""
        ref = EntityRef(EMPLOYEE_TRANSFER_KIND, change_id)
        with LogContext.for_actor(actor, ref):
            savepoint = self._session.begin_nested()
            try:
                change = self._session.execute(
                    select(EmployeeTransferModel)
                    .where(EmployeeTransferModel.id == change_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if change is None:
                    raise GatedChangeNotFoundError(str(change_id))

                employee = self._session.execute(
                    select(EmployeeModel)
                    .where(EmployeeModel.id == change.employee_id)
                    .with_for_update(of=EmployeeModel)
                    .execution_options(populate_existing=True)
                ).unique().scalar_one_or_none()
                if employee is None:
                    raise EmployeeNotFoundError(str(change.employee_id))

                # Second check, under the locks.
                reason = self._gate.skip_reason(change, as_of)
                if reason is not None:
                    savepoint.rollback()
                    logger.info("apply_skipped", extra={"reason": reason})
                    return False

                changed = {}
                for field, value in change.after_values().items():
                    if value is not None and getattr(employee, field) != value:
                        setattr(employee, field, value)
                        changed[field] = value
                applied_at = self._clock.now()
                change.applied_at = applied_at
                self._session.flush()
                savepoint.commit()
            except Exception:
                if savepoint.is_active:
                    savepoint.rollback()
                raise

            logger.info(
                "gated_change_applied",
                extra={
                    "change_id": str(change_id),
                    "employee_id": str(employee.id),
                    "change_type": change.change_type,
                    "effective_date": change.effective_date,
                    "fields_changed": sorted(changed),
                },
            )
            self._bus.publish(GatedChangeApplied(
                change=ref,
                target=EntityRef(EMPLOYEE_KIND, employee.id),
                effective_date=change.effective_date,
                applied_at=applied_at,
            ))
            return True


class GatedEffectListener:
    """Applies a gated change as soon as its approval chain completes.

    The applier's gate still decides: a change whose effective date is in
    the future is left for the sweep.
    """

    def __init__(
        self,
        applier: EffectApplier,
        kinds: tuple[str, ...] = (EMPLOYEE_TRANSFER_KIND,),
    ) -> None:
        self._applier = applier
        self._kinds = kinds

    def register(self, bus: ApprovalEventBus) -> None:
        bus.subscribe(ChainCompleted, self.on_chain_completed)

    def on_chain_completed(self, event: ChainCompleted) -> None:
        if event.approvable.kind not in self._kinds:
            return
        actor = ActorContext.system(
            correlation_id=LogContext.get_all().get("correlation_id"),
        )
        self._applier.apply(event.approvable.id, actor)
