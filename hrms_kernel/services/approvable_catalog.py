"""
ApprovableCatalog -- type tag to approvable adapter.

Responsibility:
    Maps each approvable kind (``"leave_request"``, ``"employee_transfer"``,
    ...) to the object that implements the ``Approvable`` capability for it.
    The approval chain only ever holds an ``EntityRef``; the catalog is how
    it gets from the tag back to a record, a description and a requester.

Architecture position:
    Kernel > Services.  May import from domain/, models/.

Failure modes:
    - UnknownApprovableKindError from ``adapter_for`` for unregistered tags.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hrms_kernel.db.base import Base
from hrms_kernel.domain.approvable import Approvable
from hrms_kernel.domain.approval import (
    EMPLOYEE_TRANSFER_KIND,
    EXPENSE_CLAIM_KIND,
    LEAVE_REQUEST_KIND,
    OVERTIME_REQUEST_KIND,
)
from hrms_kernel.exceptions import UnknownApprovableKindError
from hrms_kernel.models.requests import (
    EmployeeTransferModel,
    ExpenseClaimModel,
    LeaveRequestModel,
    OvertimeRequestModel,
)

# Attributes tried in order for the approver-facing description.
_DESCRIPTION_FIELDS = ("reason", "notes", "description", "change_reason")


class ModelApprovable:
    """Approvable adapter for an ORM model keyed by UUID.

    The model is expected to carry an ``employee_id`` column naming the
    requester.  An optional ``approval_line`` column on the model acts as a
    per-request override of the requester's own approval line.
    """

    def __init__(self, kind: str, model: type[Base]) -> None:
        self._kind = kind
        self._model = model

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def model(self) -> type[Base]:
        return self._model

    def load(self, session: Session, entity_id: UUID) -> Any | None:
        return session.get(self._model, entity_id)

    def describe(self, entity: Any) -> str | None:
        for field in _DESCRIPTION_FIELDS:
            value = getattr(entity, field, None)
            if value:
                return str(value)
        return None

    def requester_employee_id(self, entity: Any) -> UUID | None:
        return getattr(entity, "employee_id", None)

    def explicit_approval_line(self, entity: Any) -> str | None:
        return getattr(entity, "approval_line", None) or None

    def __repr__(self) -> str:
        return f"<ModelApprovable {self._kind} -> {self._model.__name__}>"


class ApprovableCatalog:
    """Registry of approvable adapters keyed by type tag."""

    def __init__(self) -> None:
        self._adapters: dict[str, Approvable] = {}

    def register(self, kind: str, adapter: Approvable) -> None:
        self._adapters[kind] = adapter

    def adapter_for(self, kind: str) -> Approvable:
        try:
            return self._adapters[kind]
        except KeyError:
            raise UnknownApprovableKindError(kind) from None

    def kinds(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, kind: object) -> bool:
        return kind in self._adapters


def default_catalog() -> ApprovableCatalog:
    """Catalog with every approvable kind this kernel ships models for."""
    catalog = ApprovableCatalog()
    catalog.register(LEAVE_REQUEST_KIND, ModelApprovable(LEAVE_REQUEST_KIND, LeaveRequestModel))
    catalog.register(
        OVERTIME_REQUEST_KIND, ModelApprovable(OVERTIME_REQUEST_KIND, OvertimeRequestModel),
    )
    catalog.register(EXPENSE_CLAIM_KIND, ModelApprovable(EXPENSE_CLAIM_KIND, ExpenseClaimModel))
    catalog.register(
        EMPLOYEE_TRANSFER_KIND, ModelApprovable(EMPLOYEE_TRANSFER_KIND, EmployeeTransferModel),
    )
    return catalog
