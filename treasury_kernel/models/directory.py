"""
Module: treasury_kernel.models.directory
Responsibility: Read-only reference tables maintained outside the approval
    core: departments, user profiles, and role assignments.

Architecture position: Kernel > Models.  The approval core reads these for
    inbox display names (selectors) and for the SQL-backed role directory.
    It never writes them; seed scripts and tests do.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, TrackedBase, UUIDString


class DepartmentModel(TrackedBase):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


class ProfileModel(TrackedBase):
    """A person known to the system.  ``id`` is the auth user id."""

    __tablename__ = "profiles"

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def full_name(self) -> str | None:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None

    def __repr__(self) -> str:
        return f"<Profile {self.full_name or self.id}>"


class UserRoleModel(Base):
    """Church-wide role held by a user."""

    __tablename__ = "user_roles"

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)


class DepartmentPersonnelModel(Base):
    """Role held by a user within one department."""

    __tablename__ = "department_personnel"

    __table_args__ = (
        UniqueConstraint(
            "department_id", "user_id", "role",
            name="uq_department_personnel_assignment",
        ),
    )

    department_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
