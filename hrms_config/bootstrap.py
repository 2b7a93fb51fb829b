"""
Configuration bootstrap (``hrms_config.bootstrap``).

Responsibility
--------------
Writes the approval policy of an ``HrmsConfigurationSet`` into the store:
upserts approvable types by kind and brings their approver layers in line
with the file, translating natural keys (user email, role name, employee
code) into store ids.

Invariants enforced
-------------------
* Layers are never deleted; Approvals reference them.  A stored layer that
  matches a configured one (level, kind, reference) is kept and updated,
  every other stored layer of the type is deactivated, and missing ones are
  created.
* The result passes the registry's layer-order check before returning.
* Flushes, never commits.  The caller owns the transaction.

Failure modes
-------------
* ``ValueError`` if the configuration does not validate.
* ``ApproverReferenceNotFoundError`` if a natural key matches nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrms_kernel.domain.approval import ApproverKind
from hrms_kernel.exceptions import ApproverReferenceNotFoundError
from hrms_kernel.logging_config import get_logger
from hrms_kernel.models.approval import ApprovableTypeModel, ApproverLayerModel
from hrms_kernel.models.organization import EmployeeModel, RoleModel, UserModel
from hrms_kernel.services.approvable_type_registry import ApprovableTypeRegistry

from hrms_config.schema import ApproverLayerConfig, HrmsConfigurationSet
from hrms_config.validator import validate_configuration

logger = get_logger("config.bootstrap")


@dataclass(frozen=True)
class SyncReport:
    types_created: int
    types_updated: int
    layers_created: int
    layers_deactivated: int


def resolve_approver_reference(
    session: Session, layer: ApproverLayerConfig,
) -> UUID | None:
    """Store id for a layer's natural-key reference."""
    kind = ApproverKind(layer.approver_kind)
    if not kind.requires_reference:
        return None

    if kind == ApproverKind.USER:
        stmt = select(UserModel.id).where(UserModel.email == layer.approver)
    elif kind == ApproverKind.ROLE:
        stmt = select(RoleModel.id).where(RoleModel.name == layer.approver)
    else:
        stmt = select(EmployeeModel.id).where(EmployeeModel.employee_code == layer.approver)

    ref_id = session.execute(stmt).scalar_one_or_none()
    if ref_id is None:
        raise ApproverReferenceNotFoundError(layer.approver_kind, str(layer.approver))
    return ref_id


def sync_approval_config(session: Session, config: HrmsConfigurationSet) -> SyncReport:
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    types_created = types_updated = layers_created = layers_deactivated = 0
    registry = ApprovableTypeRegistry(session)

    for type_config in config.approvable_types:
        approvable_type = registry.get_type(type_config.kind)
        if approvable_type is None:
            approvable_type = ApprovableTypeModel(kind=type_config.kind, name=type_config.name)
            session.add(approvable_type)
            types_created += 1
        else:
            types_updated += 1
        approvable_type.name = type_config.name
        approvable_type.description = type_config.description
        approvable_type.is_active = type_config.is_active
        session.flush()

        existing = list(session.execute(
            select(ApproverLayerModel).where(
                ApproverLayerModel.approvable_type_id == approvable_type.id,
            )
        ).unique().scalars().all())
        kept: set[UUID] = set()

        for layer_config in type_config.layers:
            ref_id = resolve_approver_reference(session, layer_config)
            match = next(
                (
                    layer for layer in existing
                    if layer.id not in kept
                    and layer.level == layer_config.level
                    and layer.approver_kind == layer_config.approver_kind
                    and layer.approver_ref_id == ref_id
                ),
                None,
            )
            if match is None:
                match = ApproverLayerModel(
                    approvable_type_id=approvable_type.id,
                    level=layer_config.level,
                    approver_kind=layer_config.approver_kind,
                    approver_ref_id=ref_id,
                )
                session.add(match)
                layers_created += 1
            match.is_active = layer_config.is_active
            match.description = layer_config.description
            session.flush()
            kept.add(match.id)

        for layer in existing:
            if layer.id not in kept and layer.is_active:
                layer.is_active = False
                layers_deactivated += 1
        session.flush()

        registry.layers_for(type_config.kind)

    report = SyncReport(
        types_created=types_created,
        types_updated=types_updated,
        layers_created=layers_created,
        layers_deactivated=layers_deactivated,
    )
    logger.info(
        "approval_config_synced",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "types_created": types_created,
            "types_updated": types_updated,
            "layers_created": layers_created,
            "layers_deactivated": layers_deactivated,
        },
    )
    return report
