"""
ApprovableTypeRegistry -- ordered approver layers per approvable kind.

Responsibility:
    Given a type tag, returns its active approver layers sorted by level.
    Pure read; no side effects.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Active layers of one kind have distinct, positive levels.  Two active
      layers on the same level cannot be ordered and raise
      ApproverLayerConfigurationError; this is a configuration error to be
      fixed by an operator, never a runtime state.

Failure modes:
    - ApproverLayerConfigurationError on duplicate or non-positive levels.
    - An unknown or inactive kind yields an empty list ("no approval
      required"), not an error.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import ApproverLayerDef
from hrms_kernel.exceptions import ApproverLayerConfigurationError
from hrms_kernel.logging_config import get_logger
from hrms_kernel.models.approval import ApprovableTypeModel, ApproverLayerModel

logger = get_logger("services.approvable_type_registry")


class ApprovableTypeRegistry:
    """Looks up the configured approval layers for an approvable kind."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_type(self, kind: str) -> ApprovableTypeModel | None:
        return self._session.execute(
            select(ApprovableTypeModel).where(ApprovableTypeModel.kind == kind)
        ).unique().scalar_one_or_none()

    def layers_for(self, kind: str) -> list[ApproverLayerDef]:
        """Active layers for ``kind``, sorted by level ascending.

        Returns an empty list when the kind is unconfigured or inactive.
        """
        models = self._session.execute(
            select(ApproverLayerModel)
            .join(ApprovableTypeModel, ApproverLayerModel.approvable_type_id == ApprovableTypeModel.id)
            .where(
                ApprovableTypeModel.kind == kind,
                ApprovableTypeModel.is_active.is_(True),
                ApproverLayerModel.is_active.is_(True),
            )
            .order_by(ApproverLayerModel.level, ApproverLayerModel.id)
        ).unique().scalars().all()

        layers = [m.to_dto() for m in models]
        validate_layer_order(kind, layers)
        return layers

    def next_layer(self, kind: str, after_level: int) -> ApproverLayerDef | None:
        """First active layer with a level strictly greater than ``after_level``."""
        for layer in self.layers_for(kind):
            if layer.level > after_level:
                return layer
        return None

    def requires_approval(self, kind: str) -> bool:
        return bool(self.layers_for(kind))


def validate_layer_order(kind: str, layers: list[ApproverLayerDef]) -> None:
    """Raise if sorted active layers are not strictly increasing and positive."""
    previous: int | None = None
    for layer in layers:
        if layer.level <= 0:
            logger.error(
                "approver_layer_invalid_level",
                extra={"approvable_kind": kind, "layer_level": layer.level},
            )
            raise ApproverLayerConfigurationError(
                kind, layer.level, "level must be a positive integer",
            )
        if previous is not None and layer.level == previous:
            logger.error(
                "approver_layer_duplicate_level",
                extra={"approvable_kind": kind, "layer_level": layer.level},
            )
            raise ApproverLayerConfigurationError(
                kind, layer.level, "two active layers share this level",
            )
        previous = layer.level
