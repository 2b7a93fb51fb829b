#!/usr/bin/env python3
"""
Apply due employee transfers, mutations and rotations.

Finds gated changes whose approval chain is done and whose effective date
has arrived, and applies each one exactly once.  Database URL, batch size
and sweep interval come from the active configuration (get_active_config);
the flags below override them.

Usage:
    python3 scripts/apply_due_transfers.py [options]

Examples:
    # Report what is due today without writing anything
    python3 scripts/apply_due_transfers.py --dry-run

    # Apply everything due on or before a given date, 50 per batch
    python3 scripts/apply_due_transfers.py --as-of 2024-03-01 --batch-size 50

    # Keep sweeping on the configured interval until interrupted
    python3 scripts/apply_due_transfers.py --loop
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import date
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply gated employee changes that are approved and due.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List due items and exit. No DB writes.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Items per batch (default: settings.sweep.batch_size).",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Treat this date as today (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run on the configured interval until interrupted.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: HRMS_CONFIG_PATH or the bundled default).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: settings.database.url).",
    )
    parser.add_argument(
        "--sync-config",
        action="store_true",
        help="Write the configured approval layers into the database first.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging.",
    )
    return parser.parse_args(argv)


def _print_report(report) -> None:
    mode = "DRY RUN" if report.dry_run else "APPLIED"
    print(f"[{mode}] as of {report.as_of}: due={report.due_count} "
          f"applied={report.applied} skipped={report.skipped} batches={report.batches}")
    for item in report.items:
        print(f"  {item.change_id}  {item.change_type:<9} employee={item.employee_id} "
              f"effective={item.effective_date}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from hrms_batch.scanner import DueItemScanner
    from hrms_batch.scheduler import SweepScheduler
    from hrms_config import get_active_config
    from hrms_config.bootstrap import sync_approval_config
    from hrms_kernel.db.engine import (
        create_tables,
        get_session,
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from hrms_kernel.logging_config import configure_logging

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    batch_size = args.batch_size if args.batch_size is not None else config.settings.sweep.batch_size
    if batch_size <= 0:
        print("ERROR: --batch-size must be positive", file=sys.stderr)
        return 2

    try:
        init_engine_from_url(
            args.db_url or config.settings.database.url,
            echo=config.settings.database.echo,
        )
        create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    if args.sync_config:
        try:
            with session_scope() as session:
                sync_report = sync_approval_config(session, config)
        except Exception as e:
            print(f"ERROR: Config sync failed: {e}", file=sys.stderr)
            return 1
        print(f"Synced approval config: {sync_report}")

    if args.loop:
        scheduler = SweepScheduler(
            get_session_factory(),
            interval_seconds=config.settings.sweep.interval_seconds,
            batch_size=batch_size,
            dry_run=args.dry_run,
            as_of=args.as_of,
        )
        scheduler.start()
        mode = " (dry run)" if args.dry_run else ""
        print(f"Sweeping every {config.settings.sweep.interval_seconds}s{mode}. Ctrl-C to stop.")
        try:
            while scheduler.is_running:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()
        return 0

    session = get_session()
    try:
        scanner = DueItemScanner.for_session(
            session, batch_size=batch_size, commit_per_batch=not args.dry_run,
        )
        report = scanner.run(as_of=args.as_of, dry_run=args.dry_run)
        if args.dry_run:
            session.rollback()
        else:
            session.commit()
    except Exception as e:
        session.rollback()
        print(f"ERROR: Sweep failed: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()

    _print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
