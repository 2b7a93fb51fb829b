"""
ApproverResolver -- turns one approver layer into one concrete user.

Responsibility:
    Resolves an ``ApproverLayerDef`` plus the originating request to exactly
    one user id, or None ("unresolved").  Dispatches on the layer's
    ``approver_kind`` through a strategy map; each strategy is a plain
    function ``(session, layer, context) -> UUID | None``.

Architecture position:
    Kernel > Services.  May import from domain/, models/.

Strategies:
    user           -- the layer's approver_ref_id, as is.
    employee       -- the referenced employee's linked user account.
    role           -- first member of the role, ordered by name then id.
                      The "manager" role is contextual to the requester and
                      is redirected to the approval-line strategy instead.
    approval_line  -- requester employee -> approval_line code -> manager
                      employee -> manager's user account.  A per-request
                      explicit line takes priority over the requester's own.

Failure modes:
    - Unresolved is a first-class result (None), never an exception.
      Missing role, employee without account, requester without approval
      line, manager not found: all return None.
    - UnknownApproverKindError if a layer names a kind with no strategy.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import (
    MANAGER_ROLE_NAME,
    ApproverKind,
    ApproverLayerDef,
    ResolutionContext,
)
from hrms_kernel.exceptions import UnknownApproverKindError
from hrms_kernel.logging_config import get_logger
from hrms_kernel.models.organization import (
    EmployeeModel,
    RoleModel,
    UserModel,
    user_roles,
)

logger = get_logger("services.approver_resolver")

ResolveStrategy = Callable[[Session, ApproverLayerDef, ResolutionContext], "UUID | None"]


def resolve_fixed_user(
    session: Session, layer: ApproverLayerDef, context: ResolutionContext,
) -> UUID | None:
    return layer.approver_ref_id


def resolve_fixed_employee(
    session: Session, layer: ApproverLayerDef, context: ResolutionContext,
) -> UUID | None:
    if layer.approver_ref_id is None:
        return None
    employee = session.get(EmployeeModel, layer.approver_ref_id)
    if employee is None:
        return None
    return employee.user_id


def resolve_approval_line(
    session: Session, layer: ApproverLayerDef, context: ResolutionContext,
) -> UUID | None:
    """Follow the requester's approval line to the manager's user account."""
    line = context.explicit_approval_line
    if not line:
        if context.requester_employee_id is None:
            return None
        requester = session.get(EmployeeModel, context.requester_employee_id)
        if requester is None or not requester.approval_line:
            return None
        line = requester.approval_line

    manager = session.execute(
        select(EmployeeModel).where(EmployeeModel.employee_code == line)
    ).unique().scalar_one_or_none()
    if manager is None:
        return None
    return manager.user_id


def resolve_role(
    session: Session, layer: ApproverLayerDef, context: ResolutionContext,
) -> UUID | None:
    if layer.approver_ref_id is None:
        return None
    role = session.get(RoleModel, layer.approver_ref_id)
    if role is None:
        return None

    if role.name.strip().lower() == MANAGER_ROLE_NAME:
        return resolve_approval_line(session, layer, context)

    return session.execute(
        select(UserModel.id)
        .join(user_roles, user_roles.c.user_id == UserModel.id)
        .where(user_roles.c.role_id == role.id)
        .order_by(UserModel.name, UserModel.id)
        .limit(1)
    ).scalar_one_or_none()


DEFAULT_STRATEGIES: dict[ApproverKind, ResolveStrategy] = {
    ApproverKind.USER: resolve_fixed_user,
    ApproverKind.EMPLOYEE: resolve_fixed_employee,
    ApproverKind.ROLE: resolve_role,
    ApproverKind.APPROVAL_LINE: resolve_approval_line,
}


class ApproverResolver:
    """Strategy dispatch from approver kind to a resolve function."""

    def __init__(
        self,
        session: Session,
        strategies: dict[ApproverKind, ResolveStrategy] | None = None,
    ) -> None:
        self._session = session
        self._strategies = dict(strategies or DEFAULT_STRATEGIES)

    def register(self, kind: ApproverKind, strategy: ResolveStrategy) -> None:
        """Install or replace the strategy for one approver kind."""
        self._strategies[kind] = strategy

    def resolve(
        self,
        layer: ApproverLayerDef,
        context: ResolutionContext,
        *,
        quiet: bool = False,
    ) -> UUID | None:
        """Resolve ``layer`` for the request in ``context``.

        ``quiet`` suppresses the ``approver_unresolved`` log line; the chain
        uses it when scanning every layer to locate the current one.
        """
        strategy = self._strategies.get(layer.approver_kind)
        if strategy is None:
            raise UnknownApproverKindError(str(layer.approver_kind))

        user_id = strategy(self._session, layer, context)
        if user_id is None and not quiet:
            logger.info(
                "approver_unresolved",
                extra={
                    "approvable_ref": str(context.approvable),
                    "layer_level": layer.level,
                    "approver_kind": layer.approver_kind.value,
                },
            )
        return user_id
