"""
Module: hrms_kernel.models.organization
Responsibility: ORM persistence for the identities the approver resolver
    reads: user accounts, roles and their members, and employee records with
    their approval line.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - employee_code is unique; approval lines reference it.
    - An employee links to at most one user account (user_id unique).
    - A role name is unique.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Column, ForeignKey, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_kernel.db.base import Base, UUIDString

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", UUIDString(), ForeignKey("users.id"), primary_key=True),
    Column("role_id", UUIDString(), ForeignKey("roles.id"), primary_key=True),
)


class UserModel(Base):
    """Login identity; the only kind of concrete approver."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    roles: Mapped[list["RoleModel"]] = relationship(
        "RoleModel",
        secondary=user_roles,
        back_populates="members",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class RoleModel(Base):
    """Named pool of users (e.g. HR, manager)."""

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    members: Mapped[list["UserModel"]] = relationship(
        "UserModel",
        secondary=user_roles,
        back_populates="roles",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class EmployeeModel(Base):
    """
    Employee record.

    ``approval_line`` holds the employee_code of this employee's manager and
    is read by the approval-line strategy.  The position/level/department/
    shift/employment-status references are the fields a gated transfer
    mutates.
    """

    __tablename__ = "employees"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_employees_user_id"),
    )

    employee_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    approval_line: Mapped[str | None] = mapped_column(String(50), nullable=True)

    position_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    level_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    shift_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employment_status_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    user: Mapped[UserModel | None] = relationship("UserModel", lazy="joined")

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code}>"


# Fields a gated change copies from its "after" snapshot onto the employee.
EMPLOYEE_ASSIGNMENT_FIELDS: tuple[str, ...] = (
    "position_id",
    "level_id",
    "department_id",
    "shift_id",
    "employment_status_id",
)
