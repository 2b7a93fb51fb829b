"""
Tests for approval notifications and the event bus.

Covers:
- "approval requested" goes to the resolved approver with a truncated reason
- "approval decided" goes back to the sender
- no sender means no decided notification
- a failing port never undoes the approval action
- bus delivery order and unsubscribe
"""

from datetime import datetime
from uuid import uuid4

import pytest

from hrms_kernel.domain.approval import (
    LEAVE_REQUEST_KIND,
    ActorContext,
    ApprovalStatus,
    ApproverKind,
    EntityRef,
)
from hrms_kernel.domain.events import ChainCompleted
from hrms_kernel.services.approval_engine import build_approval_engine
from hrms_kernel.services.event_bus import ApprovalEventBus
from hrms_kernel.services.notification import (
    APPROVAL_DECIDED,
    APPROVAL_REQUESTED,
    truncate_reason,
)


class ExplodingPort:
    def notify(self, recipient_id, notification):
        raise ConnectionError("smtp down")


@pytest.fixture
def leave_layers(org, transfer_world):
    return org.layers(
        LEAVE_REQUEST_KIND,
        (1, ApproverKind.APPROVAL_LINE, None),
        (2, ApproverKind.ROLE, transfer_world.hr_role.id),
    )


class TestApprovalRequested:

    def test_approver_notified_with_context(
        self, approval_engine, notifications, request_transfer, transfer_world,
    ):
        change, _ = request_transfer(change_reason="Relocation to HQ")

        sent = notifications.of_type(APPROVAL_REQUESTED)
        assert len(sent) == 1
        recipient, notification = sent[0]
        assert recipient == transfer_world.manager_user.id
        assert notification.approvable_kind == "employee_transfer"
        assert notification.approvable_id == change.id
        assert notification.level == 1
        assert notification.requester == EntityRef("user", transfer_world.requester_user.id)
        assert notification.reason == "Relocation to HQ"

    def test_reason_truncated(self, session, clock, notifications, org, transfer_world, leave_layers):
        engine = build_approval_engine(
            session, clock=clock, notification_port=notifications, reason_max_length=10,
        )
        leave = org.leave_request(transfer_world.requester, reason="x" * 400)

        engine.chain.start(EntityRef(LEAVE_REQUEST_KIND, leave.id), transfer_world.requester_actor)

        _, notification = notifications.of_type(APPROVAL_REQUESTED)[0]
        assert notification.reason == "x" * 10

    def test_default_truncation_is_300(self):
        assert len(truncate_reason("y" * 1000)) == 300
        assert truncate_reason("short") == "short"
        assert truncate_reason(None) is None

    def test_each_layer_notifies_its_approver(
        self, approval_engine, notifications, request_transfer, transfer_world,
    ):
        _, started = request_transfer()
        approval_engine.chain.decide(
            started.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor,
        )

        recipients = [r for r, _ in notifications.of_type(APPROVAL_REQUESTED)]
        assert recipients == [transfer_world.manager_user.id, transfer_world.hr_user.id]


class TestApprovalDecided:

    def test_sender_told_of_decision(
        self, approval_engine, notifications, request_transfer, transfer_world,
    ):
        _, started = request_transfer()

        approval_engine.chain.decide(
            started.created.approval_id, ApprovalStatus.REJECTED, transfer_world.manager_actor,
        )

        sent = notifications.of_type(APPROVAL_DECIDED)
        assert len(sent) == 1
        recipient, notification = sent[0]
        assert recipient == transfer_world.requester_user.id
        assert notification.decision == "rejected"
        assert notification.decider == EntityRef("user", transfer_world.manager_user.id)
        assert notification.level == 1

    def test_no_sender_no_notification(
        self, approval_engine, notifications, org, transfer_world, leave_layers, captured_logs,
    ):
        leave = org.leave_request(transfer_world.requester)
        started = approval_engine.chain.start(
            EntityRef(LEAVE_REQUEST_KIND, leave.id), ActorContext.system(),
        )

        approval_engine.chain.decide(
            started.created.approval_id, ApprovalStatus.APPROVED, transfer_world.manager_actor,
        )

        assert notifications.of_type(APPROVAL_DECIDED) == []
        assert any(r["message"] == "notification_no_recipient" for r in captured_logs())


class TestFailingPort:

    def test_failure_is_logged_not_raised(
        self, session, clock, org, transfer_world, leave_layers, captured_logs,
    ):
        engine = build_approval_engine(session, clock=clock, notification_port=ExplodingPort())
        leave = org.leave_request(transfer_world.requester)
        ref = EntityRef(LEAVE_REQUEST_KIND, leave.id)

        started = engine.chain.start(ref, transfer_world.requester_actor)

        assert started.created is not None
        assert len(engine.chain.selector.approvals_for(ref)) == 1
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_type"] == "ConnectionError"


class TestEventBus:

    def _event(self):
        return ChainCompleted(
            approvable=EntityRef(LEAVE_REQUEST_KIND, uuid4()),
            auto_approved=True,
            occurred_at=datetime(2024, 3, 1, 9, 0, 0),
        )

    def test_delivery_in_registration_order(self):
        bus = ApprovalEventBus()
        calls = []
        bus.subscribe(ChainCompleted, lambda e: calls.append("first"))
        bus.subscribe(ChainCompleted, lambda e: calls.append("second"))

        bus.publish(self._event())

        assert calls == ["first", "second"]

    def test_unsubscribe(self):
        bus = ApprovalEventBus()
        calls = []

        def listener(event):
            calls.append(event)

        bus.subscribe(ChainCompleted, listener)
        bus.unsubscribe(ChainCompleted, listener)
        bus.publish(self._event())

        assert calls == []
        assert bus.listeners_for(ChainCompleted) == []

    def test_listener_errors_propagate(self):
        bus = ApprovalEventBus()

        def broken(event):
            raise RuntimeError("listener failed")

        bus.subscribe(ChainCompleted, broken)
        with pytest.raises(RuntimeError):
            bus.publish(self._event())
