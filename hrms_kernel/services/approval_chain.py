"""
ApprovalChain -- the layered approval workflow engine.

Responsibility:
    Creates the first Approval for a new request, and on each decision
    either advances to the next layer or finalizes the chain.  Answers
    whether an approvable entity is fully approved.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/ and
    sibling services.

Invariants enforced:
    - Linear order: the Approval for layer N+1 is only created after the
      Approval for layer N is approved.
    - At most one pending Approval per (approvable, resolved approver).
      Enforced by a pre-check query before insert.
    - Once any Approval of an entity is rejected, no further Approval is
      created for it.
    - Decisions are idempotent: deciding an already decided Approval is a
      no-op that writes nothing and publishes nothing.
    - The current layer of an approved Approval is found by re-resolving
      the active layers and matching the approver, preferring the stored
      layer when it still matches.

Failure modes:
    - ApprovalNotFoundError for unknown approval ids.
    - UnauthorizedApproverError when a non-system actor decides an Approval
      assigned to someone else.
    - InvalidApprovalTransitionError for decisions other than approve/reject.
    - ApprovableNotFoundError / UnknownApprovableKindError for dangling or
      unregistered tagged references.
    - An unresolvable approver is NOT an error: the chain stalls at that
      layer and ``stalled_level`` reports where.

Audit relevance:
    approval_created, approval_decided and chain_completed log lines plus
    the Approval rows themselves form the approval audit trail.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrms_kernel.domain.approvable import Approvable
from hrms_kernel.domain.approval import (
    USER_KIND,
    ActorContext,
    ApprovalRecord,
    ApprovalStatus,
    ApproverLayerDef,
    ChainStartResult,
    ChainState,
    DecisionOutcome,
    EntityRef,
    ResolutionContext,
)
from hrms_kernel.domain.clock import Clock, SystemClock
from hrms_kernel.domain.events import (
    ApprovalDecided,
    ApprovalRequested,
    ChainCompleted,
)
from hrms_kernel.exceptions import (
    ApprovableNotFoundError,
    ApprovalNotFoundError,
    InvalidApprovalTransitionError,
    UnauthorizedApproverError,
)
from hrms_kernel.logging_config import LogContext, get_logger
from hrms_kernel.models.approval import ApprovalModel
from hrms_kernel.selectors.approval_selector import ApprovalSelector
from hrms_kernel.services.approvable_catalog import ApprovableCatalog, default_catalog
from hrms_kernel.services.approvable_type_registry import ApprovableTypeRegistry
from hrms_kernel.services.approver_resolver import ApproverResolver
from hrms_kernel.services.event_bus import ApprovalEventBus

logger = get_logger("services.approval_chain")

_DECISIONS = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED})


class ApprovalChain:
    """Drives one approvable entity through its ordered approver layers."""

    def __init__(
        self,
        session: Session,
        registry: ApprovableTypeRegistry | None = None,
        resolver: ApproverResolver | None = None,
        catalog: ApprovableCatalog | None = None,
        bus: ApprovalEventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._registry = registry or ApprovableTypeRegistry(session)
        self._resolver = resolver or ApproverResolver(session)
        self._catalog = catalog or default_catalog()
        self._bus = bus or ApprovalEventBus()
        self._clock = clock or SystemClock()
        self._selector = ApprovalSelector(session)

    @property
    def bus(self) -> ApprovalEventBus:
        return self._bus

    @property
    def selector(self) -> ApprovalSelector:
        return self._selector

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self, ref: EntityRef, actor: ActorContext) -> ChainStartResult:
        """Enter layer 1 for a new request.

        With no active layers the chain completes immediately with zero
        Approvals.  Starting a chain that already has Approvals is a no-op
        reporting the current state.
        """
        with LogContext.for_actor(actor, ref):
            layers = self._registry.layers_for(ref.kind)
            if not layers:
                self._complete(ref, auto_approved=True)
                return ChainStartResult(approvable=ref, state=ChainState.NOT_REQUIRED)

            if self._selector.approvals_for(ref):
                return ChainStartResult(approvable=ref, state=self.chain_state(ref))

            adapter, entity, context = self._load(ref)
            created = self._enter_layer(
                ref, layers[0], context,
                sender=actor.ref,
                reason=adapter.describe(entity),
            )
            if created is None:
                return ChainStartResult(
                    approvable=ref,
                    state=ChainState.NOT_STARTED,
                    stalled_level=layers[0].level,
                )
            return ChainStartResult(
                approvable=ref, state=ChainState.PENDING, created=created,
            )

    def decide(
        self,
        approval_id: UUID,
        decision: ApprovalStatus,
        actor: ActorContext,
    ) -> DecisionOutcome:
        """Inbox action: the resolved approver approves or rejects."""
        model = self._session.get(ApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        if not actor.is_system and actor.user_id != model.approver_id:
            logger.warning(
                "approval_decision_unauthorized",
                extra={
                    "approval_id": str(approval_id),
                    "approver_id": str(model.approver_id),
                },
            )
            raise UnauthorizedApproverError(str(approval_id), str(actor.user_id))
        return self.on_decision(approval_id, decision, actor)

    def on_decision(
        self,
        approval_id: UUID,
        new_status: ApprovalStatus,
        actor: ActorContext,
    ) -> DecisionOutcome:
        """Record a decision and advance or finalize the chain.

        Idempotent: an Approval that is already terminal is left untouched.
        """
        new_status = ApprovalStatus(new_status)
        if new_status not in _DECISIONS:
            raise InvalidApprovalTransitionError(
                ApprovalStatus.PENDING.value, new_status.value,
            )

        model = self._session.execute(
            select(ApprovalModel)
            .where(ApprovalModel.id == approval_id)
            .with_for_update(of=ApprovalModel)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))

        ref = EntityRef(model.approvable_kind, model.approvable_id)
        with LogContext.for_actor(actor, ref, approval_id=approval_id):
            if model.status != ApprovalStatus.PENDING.value:
                logger.info(
                    "approval_decision_noop",
                    extra={
                        "status": model.status,
                        "requested_status": new_status.value,
                    },
                )
                return DecisionOutcome(
                    approval=model.to_dto(),
                    state=self.chain_state(ref),
                    noop=True,
                )

            model.status = new_status.value
            model.decided_at = self._clock.now()
            model.decided_by_id = actor.user_id
            self._session.flush()
            record = model.to_dto()

            logger.info(
                "approval_decided",
                extra={
                    "layer_level": record.level,
                    "decision": new_status.value,
                },
            )
            self._bus.publish(ApprovalDecided(
                approval_id=record.approval_id,
                approvable=ref,
                level=record.level,
                decision=new_status,
                decider=actor.ref,
                sender=record.sender,
                occurred_at=record.decided_at,
            ))

            if new_status == ApprovalStatus.REJECTED:
                return DecisionOutcome(approval=record, state=ChainState.REJECTED)

            return self._advance(ref, record)

    def is_fully_approved(self, ref: EntityRef) -> bool:
        return self._selector.is_fully_approved(ref)

    def chain_state(self, ref: EntityRef) -> ChainState:
        counts = self._selector.status_counts(ref)
        if not any(counts.values()) and not self._registry.layers_for(ref.kind):
            return ChainState.NOT_REQUIRED
        if counts[ApprovalStatus.REJECTED]:
            return ChainState.REJECTED
        if counts[ApprovalStatus.PENDING]:
            return ChainState.PENDING
        if not counts[ApprovalStatus.APPROVED]:
            return ChainState.NOT_STARTED
        if self._selector.is_fully_approved(ref):
            return ChainState.APPROVED
        # Approved so far, but the next layer's approver was unresolvable.
        return ChainState.PENDING

    def reevaluate(self, ref: EntityRef, actor: ActorContext) -> ChainStartResult:
        """Re-drive a stalled chain after configuration or data was fixed."""
        with LogContext.for_actor(actor, ref):
            counts = self._selector.status_counts(ref)
            if not any(counts.values()):
                return self.start(ref, actor)
            if counts[ApprovalStatus.REJECTED]:
                return ChainStartResult(approvable=ref, state=ChainState.REJECTED)
            if counts[ApprovalStatus.PENDING]:
                return ChainStartResult(approvable=ref, state=ChainState.PENDING)
            if self._selector.is_fully_approved(ref):
                return ChainStartResult(approvable=ref, state=ChainState.APPROVED)

            furthest = self._selector.furthest_approved(ref)
            outcome = self._advance(ref, furthest)
            return ChainStartResult(
                approvable=ref,
                state=outcome.state,
                created=outcome.next_approval,
                stalled_level=outcome.stalled_level,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, ref: EntityRef) -> tuple[Approvable, Any, ResolutionContext]:
        adapter = self._catalog.adapter_for(ref.kind)
        entity = adapter.load(self._session, ref.id)
        if entity is None:
            raise ApprovableNotFoundError(ref.kind, str(ref.id))
        context = ResolutionContext(
            approvable=ref,
            requester_employee_id=adapter.requester_employee_id(entity),
            explicit_approval_line=adapter.explicit_approval_line(entity),
        )
        return adapter, entity, context

    def _advance(self, ref: EntityRef, approved: ApprovalRecord) -> DecisionOutcome:
        layers = self._registry.layers_for(ref.kind)
        adapter, entity, context = self._load(ref)

        current = self._current_layer(approved, layers, context)
        if current is None:
            logger.warning(
                "current_layer_unresolved",
                extra={
                    "approval_id": str(approved.approval_id),
                    "stored_level": approved.level,
                },
            )
            return DecisionOutcome(
                approval=approved,
                state=self.chain_state(ref),
                stalled_level=approved.level,
            )

        following = next((l for l in layers if l.level > current.level), None)
        if following is None:
            state = self.chain_state(ref)
            if state == ChainState.APPROVED:
                self._complete(ref, auto_approved=False)
            return DecisionOutcome(approval=approved, state=state)

        created = self._enter_layer(
            ref, following, context,
            sender=approved.sender,
            reason=adapter.describe(entity),
        )
        counts = self._selector.status_counts(ref)
        stalled = None
        if created is None and not counts[ApprovalStatus.PENDING] and not counts[ApprovalStatus.REJECTED]:
            stalled = following.level
        return DecisionOutcome(
            approval=approved,
            state=self.chain_state(ref),
            next_approval=created,
            stalled_level=stalled,
        )

    def _current_layer(
        self,
        approved: ApprovalRecord,
        layers: list[ApproverLayerDef],
        context: ResolutionContext,
    ) -> ApproverLayerDef | None:
        """Layer that produced ``approved``, found by re-resolution.

        Dynamic layers can point at different people per requester, so the
        layer is identified by which active layers currently resolve to the
        approver.  When one person sits on several layers the stored layer
        wins, then the lowest match not below the stored level.
        """
        matches = [
            layer for layer in layers
            if self._resolver.resolve(layer, context, quiet=True) == approved.approver.id
        ]
        for layer in matches:
            if layer.layer_id == approved.layer_id:
                return layer

        floor = approved.level or 0
        for layer in matches:
            if layer.level >= floor:
                return layer

        # Re-resolution drifted (e.g. approval line edited); fall back to the
        # stored layer while it is still active.
        for layer in layers:
            if layer.layer_id == approved.layer_id:
                return layer
        return None

    def _enter_layer(
        self,
        ref: EntityRef,
        layer: ApproverLayerDef,
        context: ResolutionContext,
        sender: EntityRef | None,
        reason: str | None,
    ) -> ApprovalRecord | None:
        """Create the pending Approval for ``layer``, or None if blocked."""
        if self._selector.has_status(ref, ApprovalStatus.REJECTED):
            logger.info("approval_creation_blocked_rejected", extra={"layer_level": layer.level})
            return None

        approver_id = self._resolver.resolve(layer, context)
        if approver_id is None:
            logger.warning("chain_stalled", extra={"layer_level": layer.level})
            return None

        if self._selector.has_pending_for(ref, approver_id):
            logger.info(
                "approval_duplicate_skipped",
                extra={"layer_level": layer.level, "approver_id": str(approver_id)},
            )
            return None

        approvable_type = self._registry.get_type(ref.kind)
        type_name = approvable_type.display_name if approvable_type else ref.kind
        model = ApprovalModel(
            name=f"{type_name} approval (level {layer.level})",
            approvable_kind=ref.kind,
            approvable_id=ref.id,
            approver_layer_id=layer.layer_id,
            approver_kind=USER_KIND,
            approver_id=approver_id,
            sender_kind=sender.kind if sender is not None else None,
            sender_id=sender.id if sender is not None else None,
            status=ApprovalStatus.PENDING.value,
            created_at=self._clock.now(),
        )
        self._session.add(model)
        self._session.flush()
        record = model.to_dto()

        logger.info(
            "approval_created",
            extra={
                "approval_id": str(record.approval_id),
                "layer_level": layer.level,
                "approver_id": str(approver_id),
                "approver_kind": layer.approver_kind.value,
            },
        )
        self._bus.publish(ApprovalRequested(
            approval_id=record.approval_id,
            approvable=ref,
            level=layer.level,
            approver=record.approver,
            sender=sender,
            reason=reason,
            occurred_at=record.created_at,
        ))
        return record

    def _complete(self, ref: EntityRef, auto_approved: bool) -> None:
        logger.info("chain_completed", extra={"auto_approved": auto_approved})
        self._bus.publish(ChainCompleted(
            approvable=ref,
            auto_approved=auto_approved,
            occurred_at=self._clock.now(),
        ))
