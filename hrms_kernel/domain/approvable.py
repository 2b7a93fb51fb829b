"""
Approvable capability interface.

An approvable entity is addressed by a tagged ``EntityRef``.  Each concrete
kind implements this protocol once, so the chain can load the record, read
a human description for notifications and find the requesting employee
without knowing the concrete model class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@runtime_checkable
class Approvable(Protocol):
    """Capability interface implemented once per approvable kind."""

    @property
    def kind(self) -> str: ...

    def load(self, session: Session, entity_id: UUID) -> Any | None:
        """Return the stored entity or None."""
        ...

    def describe(self, entity: Any) -> str | None:
        """Free-text reason shown to approvers, if the entity carries one."""
        ...

    def requester_employee_id(self, entity: Any) -> UUID | None:
        """Employee on whose behalf the request was raised."""
        ...

    def explicit_approval_line(self, entity: Any) -> str | None:
        """Per-request approval-line override, if the entity carries one."""
        ...
