"""
Role and capability vocabulary (``treasury_kernel.domain.roles``).

Responsibility
--------------
Typed application roles, typed capabilities, and the two pluggable
interfaces the kernel consumes for authorization:

* ``RoleDirectory`` -- where role assignments live (user_roles table,
  identity provider, test fixture).
* ``CapabilityOracle`` -- answers "may this user do X" in typed terms.
  The kernel never compares raw role strings itself.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and Protocols.  ZERO I/O.
The concrete oracle lives in ``treasury_services.permission_resolver``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID

from treasury_kernel.domain.approval import ApprovalLevel


class Role(str, Enum):
    """Application roles as stored in ``user_roles.role``."""

    SUPER_ADMINISTRATOR = "super_administrator"
    ADMINISTRATOR = "administrator"
    FINANCE_ADMINISTRATOR = "finance_administrator"
    FINANCE_MANAGER = "finance_manager"
    FINANCE_ELDER = "finance_elder"
    TREASURER = "treasurer"
    DEPARTMENT_TREASURER = "department_treasurer"
    DATA_ENTRY_CLERK = "data_entry_clerk"
    GENERAL_SECRETARY = "general_secretary"
    PASTOR = "pastor"
    HEAD_OF_DEPARTMENT = "head_of_department"
    DEPARTMENT_MEMBER = "department_member"
    SECRETARY = "secretary"


class Capability(str, Enum):
    """Typed capabilities granted to roles by configuration."""

    CREATE_REQUEST_ANY_DEPARTMENT = "create_request_any_department"
    VIEW_ALL_REQUESTS = "view_all_requests"
    APPROVE_ANY_LEVEL = "approve_any_level"
    MANAGE_APPROVAL_TEMPLATES = "manage_approval_templates"
    RECORD_DISBURSEMENT = "record_disbursement"


@dataclass(frozen=True)
class RoleAssignment:
    """One role held by a user; ``department_id`` None means church-wide."""

    role: Role
    department_id: UUID | None = None

    @property
    def is_department_scoped(self) -> bool:
        return self.department_id is not None


class RoleDirectory(Protocol):
    """Pluggable source of role assignments."""

    def assignments_for(self, user_id: UUID) -> tuple[RoleAssignment, ...]:
        """Return every role assignment held by a user."""
        ...


class CapabilityOracle(Protocol):
    """Authorization questions the kernel services ask."""

    def has_capability(self, user_id: UUID, capability: Capability) -> bool:
        ...

    def can_create_request_for_department(
        self, user_id: UUID, department_id: UUID,
    ) -> bool:
        ...

    def can_approve_at_level(
        self, user_id: UUID, level: ApprovalLevel, department_id: UUID,
    ) -> bool:
        ...

    def can_view_request(
        self, user_id: UUID, requester_id: UUID, department_id: UUID,
    ) -> bool:
        ...

    def approval_levels_for(self, user_id: UUID) -> frozenset[ApprovalLevel] | None:
        """Levels the user may ever act at; None means every level."""
        ...
