"""
Tests for ApproverResolver -- one layer to one concrete user.

Covers:
- each built-in strategy (user, employee, role, approval_line)
- the "manager" role following the requester's approval line
- per-request approval-line override
- unresolved results and their log line
- custom strategy registration and unknown kinds
"""

from uuid import uuid4

import pytest

from hrms_kernel.domain.approval import (
    LEAVE_REQUEST_KIND,
    ApproverKind,
    ApproverLayerDef,
    EntityRef,
    ResolutionContext,
)
from hrms_kernel.exceptions import UnknownApproverKindError
from hrms_kernel.services.approver_resolver import ApproverResolver


@pytest.fixture
def resolver(session):
    return ApproverResolver(session)


def layer_of(kind, ref_id=None, level=1):
    return ApproverLayerDef(
        layer_id=uuid4(),
        approvable_kind=LEAVE_REQUEST_KIND,
        level=level,
        approver_kind=kind,
        approver_ref_id=ref_id,
    )


def context_for(employee=None, explicit_line=None):
    return ResolutionContext(
        approvable=EntityRef(LEAVE_REQUEST_KIND, uuid4()),
        requester_employee_id=employee.id if employee is not None else None,
        explicit_approval_line=explicit_line,
    )


class TestFixedStrategies:

    def test_user_resolves_to_itself(self, org, resolver):
        user = org.user("Uma")
        assert resolver.resolve(layer_of(ApproverKind.USER, user.id), context_for()) == user.id

    def test_employee_resolves_to_linked_user(self, org, resolver):
        user = org.user("Eve")
        employee = org.employee("EMP09", user=user)
        layer = layer_of(ApproverKind.EMPLOYEE, employee.id)
        assert resolver.resolve(layer, context_for()) == user.id

    def test_employee_without_account_is_unresolved(self, org, resolver):
        employee = org.employee("EMP09")
        assert resolver.resolve(layer_of(ApproverKind.EMPLOYEE, employee.id), context_for()) is None

    def test_missing_employee_is_unresolved(self, resolver):
        assert resolver.resolve(layer_of(ApproverKind.EMPLOYEE, uuid4()), context_for()) is None


class TestRoleStrategy:

    def test_first_member_by_name(self, org, resolver):
        role = org.role("HR")
        org.user("Zed", roles=[role])
        first = org.user("Harriet", roles=[role])
        assert resolver.resolve(layer_of(ApproverKind.ROLE, role.id), context_for()) == first.id

    def test_role_without_members_is_unresolved(self, org, resolver, captured_logs):
        role = org.role("Finance")

        assert resolver.resolve(layer_of(ApproverKind.ROLE, role.id, level=2), context_for()) is None

        unresolved = [r for r in captured_logs() if r["message"] == "approver_unresolved"]
        assert len(unresolved) == 1
        assert unresolved[0]["layer_level"] == 2
        assert unresolved[0]["approver_kind"] == "role"

    def test_quiet_suppresses_log(self, org, resolver, captured_logs):
        role = org.role("Finance")
        resolver.resolve(layer_of(ApproverKind.ROLE, role.id), context_for(), quiet=True)
        assert not any(r["message"] == "approver_unresolved" for r in captured_logs())

    def test_missing_role_is_unresolved(self, resolver):
        assert resolver.resolve(layer_of(ApproverKind.ROLE, uuid4()), context_for()) is None

    def test_manager_role_follows_approval_line(self, org, resolver):
        manager_role = org.role("manager")
        # Alphabetically first member, but not this requester's manager
        org.user("Aaron", roles=[manager_role])
        mona = org.user("Mona", roles=[manager_role])
        org.employee("MGR01", user=mona)
        requester = org.employee("EMP01", approval_line="MGR01")

        layer = layer_of(ApproverKind.ROLE, manager_role.id)
        assert resolver.resolve(layer, context_for(requester)) == mona.id

    def test_manager_role_without_line_has_no_fallback(self, org, resolver):
        manager_role = org.role("Manager")
        org.user("Aaron", roles=[manager_role])
        requester = org.employee("EMP01")

        layer = layer_of(ApproverKind.ROLE, manager_role.id)
        assert resolver.resolve(layer, context_for(requester)) is None


class TestApprovalLineStrategy:

    @pytest.fixture
    def managers(self, org):
        mona = org.user("Mona")
        otto = org.user("Otto")
        org.employee("MGR01", user=mona)
        org.employee("MGR02", user=otto)
        return mona, otto

    def test_requester_line_resolves_manager(self, org, resolver, managers):
        mona, _ = managers
        requester = org.employee("EMP01", approval_line="MGR01")
        layer = layer_of(ApproverKind.APPROVAL_LINE)
        assert resolver.resolve(layer, context_for(requester)) == mona.id

    def test_explicit_line_takes_priority(self, org, resolver, managers):
        _, otto = managers
        requester = org.employee("EMP01", approval_line="MGR01")
        layer = layer_of(ApproverKind.APPROVAL_LINE)
        assert resolver.resolve(layer, context_for(requester, explicit_line="MGR02")) == otto.id

    def test_explicit_line_without_requester(self, resolver, managers):
        _, otto = managers
        layer = layer_of(ApproverKind.APPROVAL_LINE)
        assert resolver.resolve(layer, context_for(explicit_line="MGR02")) == otto.id

    def test_requester_without_line_is_unresolved(self, org, resolver, managers):
        requester = org.employee("EMP01")
        assert resolver.resolve(layer_of(ApproverKind.APPROVAL_LINE), context_for(requester)) is None

    def test_unknown_manager_code_is_unresolved(self, org, resolver):
        requester = org.employee("EMP01", approval_line="GHOST")
        assert resolver.resolve(layer_of(ApproverKind.APPROVAL_LINE), context_for(requester)) is None

    def test_manager_without_account_is_unresolved(self, org, resolver):
        org.employee("MGR03")
        requester = org.employee("EMP01", approval_line="MGR03")
        assert resolver.resolve(layer_of(ApproverKind.APPROVAL_LINE), context_for(requester)) is None

    def test_no_requester_is_unresolved(self, resolver):
        assert resolver.resolve(layer_of(ApproverKind.APPROVAL_LINE), context_for()) is None


class TestStrategyDispatch:

    def test_register_replaces_strategy(self, session):
        fixed = uuid4()
        resolver = ApproverResolver(session)
        resolver.register(ApproverKind.APPROVAL_LINE, lambda s, layer, ctx: fixed)

        assert resolver.resolve(layer_of(ApproverKind.APPROVAL_LINE), context_for()) == fixed

    def test_missing_strategy_raises(self, session):
        resolver = ApproverResolver(session, strategies={
            ApproverKind.USER: lambda s, layer, ctx: layer.approver_ref_id,
        })
        with pytest.raises(UnknownApproverKindError):
            resolver.resolve(layer_of(ApproverKind.ROLE, uuid4()), context_for())
