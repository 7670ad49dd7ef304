"""
treasury_services.permission_resolver -- Capability resolution.

Responsibility:
    The single place that turns role assignments into authorization
    answers.  Callers ask typed questions (``can_approve_at_level``,
    ``has_capability``) instead of comparing role-name strings.

Architecture position:
    Services layer.  Implements ``treasury_kernel.domain.roles.CapabilityOracle``.
    Role storage is pluggable through ``RoleDirectory``; role -> capability
    grants come from configuration (``treasury_config``).

Invariants enforced:
    - Capabilities are granted only through church-wide role assignments.
      A department-scoped assignment never confers church-wide powers.
    - Department-scoped approval levels (department treasurer, head of
      department) require an assignment of that role in the request's
      department.  Other levels require the church-wide role.
    - ``APPROVE_ANY_LEVEL`` overrides both rules.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_kernel.domain.approval import ApprovalLevel
from treasury_kernel.domain.roles import (
    Capability,
    Role,
    RoleAssignment,
    RoleDirectory,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.directory import DepartmentPersonnelModel, UserRoleModel

logger = get_logger("services.permission_resolver")

# Highest first; used by ``role_of`` when a user holds several roles.
ROLE_PRECEDENCE: tuple[Role, ...] = (
    Role.SUPER_ADMINISTRATOR,
    Role.ADMINISTRATOR,
    Role.FINANCE_ADMINISTRATOR,
    Role.FINANCE_MANAGER,
    Role.PASTOR,
    Role.GENERAL_SECRETARY,
    Role.FINANCE_ELDER,
    Role.TREASURER,
    Role.HEAD_OF_DEPARTMENT,
    Role.DEPARTMENT_TREASURER,
    Role.SECRETARY,
    Role.DATA_ENTRY_CLERK,
    Role.DEPARTMENT_MEMBER,
)


# =========================================================================
# Role directories
# =========================================================================


class StaticRoleDirectory:
    """In-memory role directory for tests and fixed deployments."""

    def __init__(
        self,
        assignments: Mapping[UUID, Iterable[RoleAssignment]] | None = None,
    ):
        self._assignments: dict[UUID, list[RoleAssignment]] = {
            user_id: list(items) for user_id, items in (assignments or {}).items()
        }

    def assign(
        self,
        user_id: UUID,
        role: Role,
        department_id: UUID | None = None,
    ) -> None:
        self._assignments.setdefault(user_id, []).append(
            RoleAssignment(role=role, department_id=department_id)
        )

    def assignments_for(self, user_id: UUID) -> tuple[RoleAssignment, ...]:
        return tuple(self._assignments.get(user_id, ()))


class SqlRoleDirectory:
    """Reads ``user_roles`` (church-wide) and ``department_personnel`` (scoped)."""

    def __init__(self, session: Session):
        self.session = session

    def assignments_for(self, user_id: UUID) -> tuple[RoleAssignment, ...]:
        assignments: list[RoleAssignment] = []

        for role in self.session.scalars(
            select(UserRoleModel.role).where(UserRoleModel.user_id == user_id)
        ):
            parsed = _parse_role(role, user_id)
            if parsed is not None:
                assignments.append(RoleAssignment(role=parsed))

        rows = self.session.execute(
            select(DepartmentPersonnelModel.role, DepartmentPersonnelModel.department_id)
            .where(DepartmentPersonnelModel.user_id == user_id)
        ).all()
        for role, department_id in rows:
            parsed = _parse_role(role, user_id)
            if parsed is not None:
                assignments.append(RoleAssignment(role=parsed, department_id=department_id))

        return tuple(assignments)


def _parse_role(value: str, user_id: UUID) -> Role | None:
    try:
        return Role(value)
    except ValueError:
        logger.warning(
            "unknown_role_ignored",
            extra={"role": value, "user_id": str(user_id)},
        )
        return None


# =========================================================================
# Resolver
# =========================================================================


class PermissionResolver:
    """Capability oracle over a role directory and a grant table.

    Args:
        directory: Where role assignments are read from.
        grants: Capabilities conferred by each church-wide role.
    """

    def __init__(
        self,
        directory: RoleDirectory,
        grants: Mapping[Role, frozenset[Capability]],
    ):
        self._directory = directory
        self._grants = {role: frozenset(caps) for role, caps in grants.items()}

    def roles_of(self, user_id: UUID) -> frozenset[Role]:
        return frozenset(a.role for a in self._directory.assignments_for(user_id))

    def role_of(self, user_id: UUID) -> Role | None:
        """The user's most senior role, or None if they hold none."""
        held = self.roles_of(user_id)
        for role in ROLE_PRECEDENCE:
            if role in held:
                return role
        return None

    def departments_of(self, user_id: UUID) -> frozenset[UUID]:
        return frozenset(
            a.department_id
            for a in self._directory.assignments_for(user_id)
            if a.department_id is not None
        )

    def capabilities_of(self, user_id: UUID) -> frozenset[Capability]:
        caps: set[Capability] = set()
        for assignment in self._directory.assignments_for(user_id):
            if assignment.department_id is None:
                caps |= self._grants.get(assignment.role, frozenset())
        return frozenset(caps)

    def has_capability(self, user_id: UUID, capability: Capability) -> bool:
        return capability in self.capabilities_of(user_id)

    def can_create_request_for_department(
        self, user_id: UUID, department_id: UUID,
    ) -> bool:
        if self.has_capability(user_id, Capability.CREATE_REQUEST_ANY_DEPARTMENT):
            return True
        return department_id in self.departments_of(user_id)

    def can_view_request(
        self, user_id: UUID, requester_id: UUID, department_id: UUID,
    ) -> bool:
        if user_id == requester_id:
            return True
        if self.has_capability(user_id, Capability.VIEW_ALL_REQUESTS):
            return True
        return department_id in self.departments_of(user_id)

    def can_approve_at_level(
        self, user_id: UUID, level: ApprovalLevel, department_id: UUID,
    ) -> bool:
        if self.has_capability(user_id, Capability.APPROVE_ANY_LEVEL):
            return True
        role = Role(level.value)
        for assignment in self._directory.assignments_for(user_id):
            if assignment.role != role:
                continue
            if level.is_department_scoped:
                if assignment.department_id == department_id:
                    return True
            elif assignment.department_id is None:
                return True
        return False

    def approval_levels_for(self, user_id: UUID) -> frozenset[ApprovalLevel] | None:
        """Levels the user may ever act at; None means every level."""
        if self.has_capability(user_id, Capability.APPROVE_ANY_LEVEL):
            return None
        level_values = {level.value for level in ApprovalLevel}
        return frozenset(
            ApprovalLevel(a.role.value)
            for a in self._directory.assignments_for(user_id)
            if a.role.value in level_values
        )
