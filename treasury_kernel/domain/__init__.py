"""
Pure domain layer.

This module contains pure data transfer objects and domain vocabulary
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the Clock interface itself)
- I/O

All domain objects are immutable and deterministic.
"""

from treasury_kernel.domain.approval import (
    DEFAULT_STEP_TIMEOUT_HOURS,
    AdvanceResult,
    ApprovalDecision,
    ApprovalLevel,
    ApprovalStepDefinition,
    ApprovalTemplate,
    RequestApproval,
    StepStatus,
)
from treasury_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from treasury_kernel.domain.money_request import (
    Approved,
    AwaitingApproval,
    Draft,
    MoneyRequest,
    Paid,
    PendingApproval,
    Rejected,
    RequestPhase,
    RequestStatus,
    Submitted,
    parse_status_label,
)
from treasury_kernel.domain.roles import (
    Capability,
    CapabilityOracle,
    Role,
    RoleAssignment,
    RoleDirectory,
)

__all__ = [
    "DEFAULT_STEP_TIMEOUT_HOURS",
    "AdvanceResult",
    "ApprovalDecision",
    "ApprovalLevel",
    "ApprovalStepDefinition",
    "ApprovalTemplate",
    "RequestApproval",
    "StepStatus",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Approved",
    "AwaitingApproval",
    "Draft",
    "MoneyRequest",
    "Paid",
    "PendingApproval",
    "Rejected",
    "RequestPhase",
    "RequestStatus",
    "Submitted",
    "parse_status_label",
    "Capability",
    "CapabilityOracle",
    "Role",
    "RoleAssignment",
    "RoleDirectory",
]
