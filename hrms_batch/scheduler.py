"""
SweepScheduler -- In-process polling trigger for the due-item sweep.

Contract:
    Runs ``DueItemScanner.run()`` on a fixed interval with a fresh session
    per tick, committing after each successful tick and rolling back on
    failure.  A dry-run scheduler only reports; every tick rolls back.

Architecture: hrms_batch.  Uses hrms_batch.scanner for the sweep itself.

Invariants enforced:
    - All dates from the injected Clock.
    - Graceful shutdown: ``stop()`` signals the loop and waits for the
      current tick to finish.
"""

from __future__ import annotations

import threading
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.logging_config import LogContext, get_logger

from hrms_batch.scanner import DEFAULT_BATCH_SIZE, DueItemScanner, SweepReport

logger = get_logger("batch.scheduler")

DEFAULT_INTERVAL_SECONDS = 86400


class SweepScheduler:
    """In-process polling scheduler for the due-item sweep.

    Contract:
        - ``tick()`` runs one sweep and commits.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Two schedulers
          sweeping the same store are safe because every apply re-checks
          under row locks, but they do duplicate query work.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scanner_factory: Callable[[Session], DueItemScanner] | None = None,
        clock: Clock | None = None,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
        as_of: date | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._scanner_factory = scanner_factory or self._default_scanner
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._dry_run = dry_run
        # Pinned sweep date; None means clock.today() on every tick
        self._as_of = as_of
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks = 0

    def _default_scanner(self, session: Session) -> DueItemScanner:
        return DueItemScanner.for_session(
            session,
            clock=self._clock,
            batch_size=self._batch_size,
            commit_per_batch=not self._dry_run,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> SweepReport | None:
        """Run one sweep (public for testing).

        Returns the sweep report, or None if the sweep failed.
        """
        self._ticks += 1
        session = self._session_factory()
        with LogContext.bind(correlation_id=f"sweep-{self._ticks}"):
            try:
                report = self._scanner_factory(session).run(
                    as_of=self._as_of, dry_run=self._dry_run,
                )
                if self._dry_run:
                    session.rollback()
                else:
                    session.commit()
                return report
            except Exception:
                session.rollback()
                logger.exception("sweep_tick_failed")
                return None
            finally:
                session.close()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="sweep-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "interval_seconds": self._interval,
                "dry_run": self._dry_run,
                "as_of": self._as_of,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks(self) -> int:
        return self._ticks

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
