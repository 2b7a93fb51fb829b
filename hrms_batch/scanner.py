"""
DueItemScanner -- sweep due gated changes into the EffectApplier.

Contract:
    ``run()`` pages through due items (not applied, not cancelled, effective
    on or before ``as_of``, chain approved or not required) in bounded
    batches ordered by effective date, and applies each one.  In dry-run
    mode the due items are reported and nothing is written.

Architecture: hrms_batch.  Uses hrms_kernel selectors and services.

Invariants enforced:
    - Every apply goes through ``EffectApplier.apply``, which re-checks the
      gate under row locks; an item applied concurrently by another path is
      counted as skipped, never applied twice.
    - Fatal layer configuration (duplicate active levels) surfaces before any
      item is touched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import EMPLOYEE_TRANSFER_KIND, ActorContext
from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.logging_config import get_logger
from hrms_kernel.selectors.due_item_selector import DueItem, DueItemSelector
from hrms_kernel.services.approvable_type_registry import ApprovableTypeRegistry
from hrms_kernel.services.approval_engine import build_approval_engine
from hrms_kernel.services.effect_applier import EffectApplier
from hrms_kernel.services.notification import NotificationPort

logger = get_logger("batch.scanner")

DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class SweepReport:
    """Outcome of one sweep."""

    as_of: date
    dry_run: bool
    due_count: int
    applied: int
    skipped: int
    batches: int
    items: tuple[DueItem, ...] = field(default=())

    @property
    def change_ids(self) -> tuple[UUID, ...]:
        return tuple(item.change_id for item in self.items)


class DueItemScanner:
    """Periodic query feeding due gated changes to the applier.

    Contract:
        - Processes at most ``batch_size`` items per page.
        - With ``commit_per_batch`` the session is committed after every
          page so row locks never outlive one batch.  Otherwise the caller
          owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        applier: EffectApplier,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        commit_per_batch: bool = False,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._session = session
        self._applier = applier
        self._clock = clock or SystemClock()
        self._batch_size = batch_size
        self._commit_per_batch = commit_per_batch
        self._selector = DueItemSelector(session)
        self._registry = ApprovableTypeRegistry(session)

    @classmethod
    def for_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        commit_per_batch: bool = False,
        notification_port: NotificationPort | None = None,
    ) -> DueItemScanner:
        """Scanner with a fully wired approval engine on ``session``."""
        engine = build_approval_engine(
            session, clock=clock, notification_port=notification_port,
        )
        return cls(
            session,
            engine.applier,
            clock=engine.clock,
            batch_size=batch_size,
            commit_per_batch=commit_per_batch,
        )

    def run(
        self,
        as_of: date | None = None,
        dry_run: bool = False,
        batch_size: int | None = None,
        actor: ActorContext | None = None,
    ) -> SweepReport:
        as_of = as_of or self._clock.today()
        limit = batch_size or self._batch_size
        actor = actor or ActorContext.system()

        # Raises on duplicate active levels before anything is applied.
        self._registry.layers_for(EMPLOYEE_TRANSFER_KIND)

        logger.info(
            "sweep_started",
            extra={"as_of": as_of, "dry_run": dry_run, "batch_size": limit},
        )

        reported: list[DueItem] = []
        applied = 0
        skipped = 0
        batches = 0
        cursor: tuple[date, UUID] | None = None

        while True:
            page = self._selector.due_page(as_of, limit=limit, after=cursor)
            if not page:
                break
            batches += 1
            cursor = (page[-1].effective_date, page[-1].change_id)

            batch_applied = 0
            for item in page:
                if dry_run:
                    reported.append(item)
                    continue
                if self._applier.apply(item.change_id, actor, as_of=as_of):
                    reported.append(item)
                    batch_applied += 1
                else:
                    skipped += 1
            applied += batch_applied

            if self._commit_per_batch and not dry_run:
                self._session.commit()

            logger.info(
                "sweep_batch_processed",
                extra={
                    "batch": batches,
                    "batch_items": len(page),
                    "batch_applied": batch_applied,
                    "dry_run": dry_run,
                },
            )
            if len(page) < limit:
                break

        report = SweepReport(
            as_of=as_of,
            dry_run=dry_run,
            due_count=len(reported) + skipped,
            applied=applied,
            skipped=skipped,
            batches=batches,
            items=tuple(reported),
        )
        logger.info(
            "sweep_completed",
            extra={
                "as_of": as_of,
                "dry_run": dry_run,
                "due_count": report.due_count,
                "applied": report.applied,
                "skipped": report.skipped,
                "batches": report.batches,
            },
        )
        return report
