"""
hrms_batch -- Scheduled sweep for due gated changes.

Finds employee transfers, mutations and rotations whose approval chain is
done and whose effective date has arrived, and applies them through the
kernel's EffectApplier in bounded, keyset-paginated batches.  An
in-process polling scheduler drives the sweep on a fixed interval.

Architecture:
    hrms_batch/ is a top-level package.  It imports from hrms_kernel;
    nothing in hrms_kernel imports from hrms_batch.

Invariants:
    - Deterministic order: effective date ascending, then id.
    - Bounded batches; a sweep that finds nothing is a normal outcome.
    - Dry run reports due items and writes nothing.
    - Clock injection (no datetime.now() calls).
    - Graceful shutdown of the scheduler thread.
"""

from hrms_batch.scanner import DueItemScanner, SweepReport
from hrms_batch.scheduler import SweepScheduler

__all__ = [
    "DueItemScanner",
    "SweepReport",
    "SweepScheduler",
]
