"""
ApprovalEngine -- wires the approval services onto one session.

The engine ties together:
- ApprovableTypeRegistry: layer lookup
- ApproverResolver: layer -> concrete user
- ApprovalChain: start / decide / advance
- EffectGate + EffectApplier: exactly-once gated commit
- ApprovalEventBus: NotificationDispatcher and GatedEffectListener

Services flush, they never commit.  The caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.services.approvable_catalog import ApprovableCatalog, default_catalog
from hrms_kernel.services.approvable_type_registry import ApprovableTypeRegistry
from hrms_kernel.services.approval_chain import ApprovalChain
from hrms_kernel.services.approver_resolver import ApproverResolver
from hrms_kernel.services.effect_applier import (
    EffectApplier,
    EffectGate,
    GatedEffectListener,
)
from hrms_kernel.services.event_bus import ApprovalEventBus
from hrms_kernel.services.notification import (
    DEFAULT_REASON_MAX_LENGTH,
    LoggingNotificationPort,
    NotificationDispatcher,
    NotificationPort,
)
from hrms_kernel.services.transfer_service import EmployeeTransferService


@dataclass
class ApprovalEngine:
    """Every approval service, sharing one session, clock and event bus."""

    session: Session
    clock: Clock
    bus: ApprovalEventBus
    registry: ApprovableTypeRegistry
    resolver: ApproverResolver
    catalog: ApprovableCatalog
    chain: ApprovalChain
    gate: EffectGate
    applier: EffectApplier
    transfers: EmployeeTransferService


def build_approval_engine(
    session: Session,
    clock: Clock | None = None,
    notification_port: NotificationPort | None = None,
    reason_max_length: int = DEFAULT_REASON_MAX_LENGTH,
    catalog: ApprovableCatalog | None = None,
    apply_on_completion: bool = True,
) -> ApprovalEngine:
    """Build the engine with its listeners registered.

    Args:
        session: Caller-owned session; nothing here commits.
        clock: Defaults to SystemClock.
        notification_port: Defaults to a port that only logs.
        reason_max_length: Truncation for the reason in "approval requested".
        catalog: Approvable adapters; defaults to every shipped kind.
        apply_on_completion: Register the GatedEffectListener so a gated
            change is applied as soon as its chain completes, if due.
    """
    clock = clock or SystemClock()
    bus = ApprovalEventBus()
    registry = ApprovableTypeRegistry(session)
    resolver = ApproverResolver(session)
    catalog = catalog or default_catalog()

    chain = ApprovalChain(
        session,
        registry=registry,
        resolver=resolver,
        catalog=catalog,
        bus=bus,
        clock=clock,
    )
    gate = EffectGate(chain, clock)
    applier = EffectApplier(session, gate, bus=bus, clock=clock)

    NotificationDispatcher(
        notification_port or LoggingNotificationPort(),
        reason_max_length=reason_max_length,
    ).register(bus)
    if apply_on_completion:
        GatedEffectListener(applier).register(bus)

    return ApprovalEngine(
        session=session,
        clock=clock,
        bus=bus,
        registry=registry,
        resolver=resolver,
        catalog=catalog,
        chain=chain,
        gate=gate,
        applier=applier,
        transfers=EmployeeTransferService(session, chain, applier, clock),
    )
