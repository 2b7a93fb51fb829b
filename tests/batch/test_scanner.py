"""
Tests for hrms_batch.scanner -- the periodic due-item sweep.

Validates DueItemScanner: due-item selection (approved or not required,
effective, unapplied, not cancelled), bounded batches with keyset paging,
dry-run reporting, deterministic ordering and skip accounting.

Uses in-memory SQLite with real ORM models.
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from hrms_kernel.domain.approval import (
    EMPLOYEE_TRANSFER_KIND,
    ApprovalStatus,
    ApproverKind,
)
from hrms_kernel.exceptions import ApproverLayerConfigurationError
from hrms_kernel.models.requests import EmployeeTransferModel
from hrms_kernel.selectors.due_item_selector import DueItemSelector

from hrms_batch.scanner import DueItemScanner, SweepReport

AS_OF = date(2024, 3, 10)


@pytest.fixture
def employee(org):
    return org.employee("EMP30")


@pytest.fixture
def make_change(session, clock):
    """Insert a gated change row directly, without starting a chain."""

    def _make(employee, effective_date, **kwargs):
        change = EmployeeTransferModel(
            employee_id=employee.id,
            change_type=kwargs.pop("change_type", "transfer"),
            to_position_id=kwargs.pop("to_position_id", uuid4()),
            effective_date=effective_date,
            created_at=clock.now(),
            **kwargs,
        )
        session.add(change)
        session.flush()
        return change

    return _make


@pytest.fixture
def scanner(session, clock):
    return DueItemScanner.for_session(session, clock=clock, batch_size=2)


class RefusingApplier:
    """Applier stand-in that loses every race."""

    def __init__(self):
        self.calls = []

    def apply(self, change_id, actor, as_of=None):
        self.calls.append(change_id)
        return False


# =============================================================================
# Selection
# =============================================================================


class TestDueSelection:

    def test_not_required_changes_are_due(self, session, employee, make_change):
        make_change(employee, date(2024, 3, 5))
        assert DueItemSelector(session).count_due(AS_OF) == 1

    def test_future_and_applied_and_cancelled_excluded(self, session, employee, make_change, clock):
        make_change(employee, date(2024, 3, 11))
        make_change(employee, date(2024, 3, 1), applied_at=clock.now())
        make_change(employee, date(2024, 3, 1), cancelled_at=clock.now())
        assert DueItemSelector(session).count_due(AS_OF) == 0

    def test_chain_states(self, approval_engine, request_transfer, transfer_world, session):
        chain = approval_engine.chain
        effective = date(2024, 3, 20)

        # pending at level 1
        request_transfer(effective_date=effective)
        # rejected at level 1
        _, rejected = request_transfer(effective_date=effective)
        chain.decide(rejected.created.approval_id, ApprovalStatus.REJECTED, transfer_world.manager_actor)
        # approved at level 1, pending at level 2
        _, partial = request_transfer(effective_date=effective)
        chain.decide(partial.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor)
        # fully approved
        approved_change, approved = request_transfer(effective_date=effective)
        first = chain.decide(
            approved.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor,
        )
        chain.decide(first.next_approval.approval_id, ApprovalStatus.APPROVED, transfer_world.hr_actor)

        page = DueItemSelector(session).due_page(effective, limit=10)

        assert [item.change_id for item in page] == [approved_change.id]

    def test_unstarted_chain_is_not_due(self, transfer_world, make_change, session):
        make_change(transfer_world.requester, date(2024, 3, 1))
        assert DueItemSelector(session).count_due(AS_OF) == 0

    def test_stalled_after_approval_is_not_due(
        self, org, session, approval_engine, request_transfer, transfer_world,
    ):
        # Nobody holds the level 2 role, so the chain stalls after level 1
        empty_role = org.role("Payroll")
        transfer_world.layers[1].approver_ref_id = empty_role.id
        session.flush()
        _, started = request_transfer(effective_date=date(2024, 3, 20))
        outcome = approval_engine.chain.decide(
            started.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor,
        )
        assert outcome.stalled_level == 2

        assert DueItemSelector(session).count_due(date(2024, 3, 20)) == 0

    def test_pending_approval_blocks_after_layer_removed(
        self, session, approval_engine, request_transfer, transfer_world,
    ):
        _, started = request_transfer(effective_date=date(2024, 3, 20))
        approval_engine.chain.decide(
            started.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor,
        )
        transfer_world.layers[1].is_active = False
        session.flush()

        # Level 2 is pending but the layer is gone; pending still blocks
        assert DueItemSelector(session).count_due(date(2024, 3, 20)) == 0


# =============================================================================
# Sweep
# =============================================================================


class TestSweep:

    def test_applies_due_items_in_batches(self, scanner, session, employee, make_change):
        changes = [make_change(employee, date(2024, 3, day)) for day in (1, 2, 3, 4, 5)]

        report = scanner.run(as_of=AS_OF)

        assert isinstance(report, SweepReport)
        assert report.applied == 5
        assert report.skipped == 0
        assert report.due_count == 5
        assert report.batches == 3
        assert not report.dry_run
        assert all(c.applied_at is not None for c in changes)

    def test_exact_multiple_needs_final_empty_page(self, scanner, employee, make_change):
        for day in (1, 2, 3, 4):
            make_change(employee, date(2024, 3, day))

        report = scanner.run(as_of=AS_OF)

        assert report.applied == 4
        assert report.batches == 2

    def test_oldest_effective_date_first(self, scanner, employee, make_change):
        late = make_change(employee, date(2024, 3, 9))
        early = make_change(employee, date(2024, 3, 2))
        middle = make_change(employee, date(2024, 3, 5))

        report = scanner.run(as_of=AS_OF)

        assert report.change_ids == (early.id, middle.id, late.id)

    def test_last_applied_change_wins(self, scanner, session, employee, make_change):
        first_position, second_position = uuid4(), uuid4()
        make_change(employee, date(2024, 3, 2), to_position_id=first_position)
        make_change(employee, date(2024, 3, 6), to_position_id=second_position)

        scanner.run(as_of=AS_OF)

        assert employee.position_id == second_position

    def test_dry_run_writes_nothing(self, scanner, session, employee, make_change, captured_logs):
        changes = [make_change(employee, date(2024, 3, day)) for day in (1, 2, 3)]

        report = scanner.run(as_of=AS_OF, dry_run=True)

        assert report.dry_run
        assert report.due_count == 3
        assert report.applied == 0
        assert report.batches == 2
        assert set(report.change_ids) == {c.id for c in changes}
        assert all(c.applied_at is None for c in changes)
        assert employee.position_id is None
        assert DueItemSelector(session).count_due(AS_OF) == 3
        assert not any(r["message"] == "gated_change_applied" for r in captured_logs())

    def test_nothing_due(self, scanner):
        report = scanner.run(as_of=AS_OF)
        assert report.due_count == 0
        assert report.batches == 0
        assert report.items == ()

    def test_defaults_to_clock_today(self, scanner, employee, make_change, clock):
        make_change(employee, clock.today())
        make_change(employee, clock.today() + timedelta(days=1))

        report = scanner.run()

        assert report.as_of == clock.today()
        assert report.applied == 1

    def test_lost_races_count_as_skipped(self, session, clock, employee, make_change):
        for day in (1, 2, 3):
            make_change(employee, date(2024, 3, day))
        applier = RefusingApplier()

        report = DueItemScanner(session, applier, clock=clock, batch_size=2).run(as_of=AS_OF)

        assert len(applier.calls) == 3
        assert report.applied == 0
        assert report.skipped == 3
        assert report.due_count == 3
        assert report.items == ()

    def test_batch_size_override(self, scanner, employee, make_change):
        for day in (1, 2, 3):
            make_change(employee, date(2024, 3, day))

        report = scanner.run(as_of=AS_OF, batch_size=10)

        assert report.batches == 1

    def test_duplicate_levels_fail_before_applying(
        self, org, scanner, employee, make_change,
    ):
        org.layers(
            EMPLOYEE_TRANSFER_KIND,
            (1, ApproverKind.APPROVAL_LINE, None),
            (1, ApproverKind.APPROVAL_LINE, None),
        )
        change = make_change(employee, date(2024, 3, 1))

        with pytest.raises(ApproverLayerConfigurationError):
            scanner.run(as_of=AS_OF)
        assert change.applied_at is None

    def test_invalid_batch_size(self, session):
        with pytest.raises(ValueError):
            DueItemScanner(session, RefusingApplier(), batch_size=0)

    def test_sweep_logs(self, scanner, employee, make_change, captured_logs):
        make_change(employee, date(2024, 3, 1))

        scanner.run(as_of=AS_OF)

        messages = [r["message"] for r in captured_logs()]
        assert "sweep_started" in messages
        assert "sweep_batch_processed" in messages
        completed = [r for r in captured_logs() if r["message"] == "sweep_completed"]
        assert completed[0]["applied"] == 1
        assert completed[0]["as_of"] == AS_OF.isoformat()
