"""
Pytest fixtures for the HRMS approval engine test suite.

Provides:
- In-memory SQLite database (StaticPool) with every table created
- A DeterministicClock with naive datetimes (SQLite strips tzinfo)
- A recording notification port
- Organization builders (users, roles, employees, approver layers)
- Captured structured logs
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from io import StringIO
from uuid import UUID, uuid4

import pytest

from hrms_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from hrms_kernel.domain.approval import (
    EMPLOYEE_TRANSFER_KIND,
    ActorContext,
    ApproverKind,
)
from hrms_kernel.domain.clock import DeterministicClock
from hrms_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from hrms_kernel.models.approval import ApprovableTypeModel, ApproverLayerModel
from hrms_kernel.models.organization import EmployeeModel, RoleModel, UserModel
from hrms_kernel.models.requests import LeaveRequestModel
from hrms_kernel.services.approval_engine import build_approval_engine
from hrms_kernel.services.notification import ApprovalNotification


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture hrms_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, chain):
            chain.start(ref, actor)
            logs = captured_logs()
            assert any(r["message"] == "approval_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("hrms_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def clock():
    # Naive datetimes for SQLite compatibility (SQLite strips tzinfo)
    return DeterministicClock(fixed_time=datetime(2024, 3, 1, 9, 0, 0))


# =============================================================================
# Notification port
# =============================================================================


class RecordingNotificationPort:
    """Notification port that keeps every delivery in memory."""

    def __init__(self):
        self.sent: list[tuple[UUID, ApprovalNotification]] = []

    def notify(self, recipient_id: UUID, notification: ApprovalNotification) -> None:
        self.sent.append((recipient_id, notification))

    def of_type(self, event_type: str) -> list[tuple[UUID, ApprovalNotification]]:
        return [(r, n) for r, n in self.sent if n.event_type == event_type]


@pytest.fixture
def notifications():
    return RecordingNotificationPort()


@pytest.fixture
def approval_engine(session, clock, notifications):
    """Every approval service wired onto the test session."""
    return build_approval_engine(session, clock=clock, notification_port=notifications)


# =============================================================================
# Organization builders
# =============================================================================


class OrgBuilder:
    """Creates users, roles, employees and approver layers, flushing each."""

    def __init__(self, session):
        self.session = session

    def role(self, name: str) -> RoleModel:
        role = RoleModel(name=name)
        self.session.add(role)
        self.session.flush()
        return role

    def user(self, name: str, email: str | None = None, roles=()) -> UserModel:
        user = UserModel(name=name, email=email or f"{name.lower()}@example.com")
        user.roles = list(roles)
        self.session.add(user)
        self.session.flush()
        return user

    def employee(
        self,
        code: str,
        user: UserModel | None = None,
        approval_line: str | None = None,
        **assignment,
    ) -> EmployeeModel:
        employee = EmployeeModel(
            employee_code=code,
            full_name=f"Employee {code}",
            user_id=user.id if user is not None else None,
            approval_line=approval_line,
            **assignment,
        )
        self.session.add(employee)
        self.session.flush()
        return employee

    def approvable_type(self, kind: str, name: str | None = None) -> ApprovableTypeModel:
        approvable_type = ApprovableTypeModel(kind=kind, name=name or kind.replace("_", " ").title())
        self.session.add(approvable_type)
        self.session.flush()
        return approvable_type

    def layers(self, kind: str, *specs) -> list[ApproverLayerModel]:
        """Configure layers for ``kind``.

        Each spec is ``(level, ApproverKind, ref_id)`` or
        ``(level, ApproverKind, ref_id, is_active)``.
        """
        approvable_type = self.session.query(ApprovableTypeModel).filter_by(kind=kind).one_or_none()
        if approvable_type is None:
            approvable_type = self.approvable_type(kind)
        created = []
        for spec in specs:
            level, approver_kind, ref_id = spec[:3]
            is_active = spec[3] if len(spec) > 3 else True
            layer = ApproverLayerModel(
                approvable_type_id=approvable_type.id,
                level=level,
                approver_kind=ApproverKind(approver_kind).value,
                approver_ref_id=ref_id,
                is_active=is_active,
            )
            self.session.add(layer)
            created.append(layer)
        self.session.flush()
        return created

    def leave_request(self, employee: EmployeeModel, reason: str | None = "Family trip", at=None):
        request = LeaveRequestModel(
            employee_id=employee.id,
            leave_type="annual",
            start_date=date(2024, 3, 10),
            end_date=date(2024, 3, 12),
            reason=reason,
            created_at=at or datetime(2024, 3, 1, 9, 0, 0),
        )
        self.session.add(request)
        self.session.flush()
        return request


@pytest.fixture
def org(session):
    return OrgBuilder(session)


@dataclass
class TransferWorld:
    """The standard two-layer transfer setup.

    Employee A (EMP01) reports to MGR01.  Transfers need level 1
    (approval line) then level 2 (role "HR").
    """

    hr_role: RoleModel
    manager_role: RoleModel
    requester_user: UserModel
    manager_user: UserModel
    hr_user: UserModel
    requester: EmployeeModel
    manager: EmployeeModel
    layers: list = field(default_factory=list)

    @property
    def requester_actor(self) -> ActorContext:
        return ActorContext.user(self.requester_user.id)

    @property
    def manager_actor(self) -> ActorContext:
        return ActorContext.user(self.manager_user.id)

    @property
    def hr_actor(self) -> ActorContext:
        return ActorContext.user(self.hr_user.id)


@pytest.fixture
def transfer_world(org) -> TransferWorld:
    hr_role = org.role("HR")
    manager_role = org.role("manager")
    requester_user = org.user("Alice")
    manager_user = org.user("Mona", roles=[manager_role])
    hr_user = org.user("Harriet", roles=[hr_role])
    manager = org.employee("MGR01", user=manager_user)
    requester = org.employee("EMP01", user=requester_user, approval_line="MGR01")
    layers = org.layers(
        EMPLOYEE_TRANSFER_KIND,
        (1, ApproverKind.APPROVAL_LINE, None),
        (2, ApproverKind.ROLE, hr_role.id),
    )
    return TransferWorld(
        hr_role=hr_role,
        manager_role=manager_role,
        requester_user=requester_user,
        manager_user=manager_user,
        hr_user=hr_user,
        requester=requester,
        manager=manager,
        layers=layers,
    )


@pytest.fixture
def request_transfer(approval_engine, transfer_world, clock):
    """Factory: request a gated change for the standard requester.

    Returns ``(change, ChainStartResult)``.
    """

    def _request(
        *,
        employee=None,
        to_fields=None,
        effective_date=None,
        actor=None,
        change_type="transfer",
        change_reason="Move to the Jakarta office",
        approval_line=None,
    ):
        return approval_engine.transfers.request_transfer(
            employee_id=(employee or transfer_world.requester).id,
            change_type=change_type,
            to_fields=to_fields if to_fields is not None else {"position_id": uuid4()},
            effective_date=effective_date or clock.today(),
            actor=actor or transfer_world.requester_actor,
            change_reason=change_reason,
            approval_line=approval_line,
        )

    return _request
