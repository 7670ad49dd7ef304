"""
Approval domain types (``treasury_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the sequential approval chain: approval levels,
template and step definitions, materialized step instances, and the
decision vocabulary.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Step orders are unique within a template (validated by the engine
  before a template is persisted).
* ``RequestApproval`` is a snapshot; the chain's current step is derived
  from a tuple of them, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Approval levels
# =========================================================================


class ApprovalLevel(str, Enum):
    """Role identifiers that can appear as a step in an approval chain."""

    DEPARTMENT_TREASURER = "department_treasurer"
    HEAD_OF_DEPARTMENT = "head_of_department"
    FINANCE_ELDER = "finance_elder"
    GENERAL_SECRETARY = "general_secretary"
    PASTOR = "pastor"

    @property
    def label(self) -> str:
        return _LEVEL_LABELS[self]

    @property
    def is_department_scoped(self) -> bool:
        """Levels held per department rather than church-wide."""
        return self in DEPARTMENT_SCOPED_LEVELS


_LEVEL_LABELS: dict[ApprovalLevel, str] = {
    ApprovalLevel.DEPARTMENT_TREASURER: "Department Treasurer",
    ApprovalLevel.HEAD_OF_DEPARTMENT: "Head of Department",
    ApprovalLevel.FINANCE_ELDER: "Finance Elder",
    ApprovalLevel.GENERAL_SECRETARY: "General Secretary",
    ApprovalLevel.PASTOR: "Pastor",
}

DEPARTMENT_SCOPED_LEVELS: frozenset[ApprovalLevel] = frozenset({
    ApprovalLevel.DEPARTMENT_TREASURER,
    ApprovalLevel.HEAD_OF_DEPARTMENT,
})


class StepStatus(str, Enum):
    """Status of one materialized approval step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    """Decision an approver records on the current step."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def step_status(self) -> StepStatus:
        return StepStatus(self.value)


# =========================================================================
# Templates
# =========================================================================


DEFAULT_STEP_TIMEOUT_HOURS = 72


@dataclass(frozen=True)
class ApprovalStepDefinition:
    """One required sign-off in a template.

    ``timeout_hours`` is advisory: reminder jobs read it, the chain
    engine does not.
    """

    role: ApprovalLevel
    step_order: int
    required: bool = True
    timeout_hours: int = DEFAULT_STEP_TIMEOUT_HOURS

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "step_order": self.step_order,
            "required": self.required,
            "timeout_hours": self.timeout_hours,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ApprovalStepDefinition:
        return cls(
            role=ApprovalLevel(data["role"]),
            step_order=int(data["step_order"]),
            required=bool(data.get("required", True)),
            timeout_hours=int(data.get("timeout_hours", DEFAULT_STEP_TIMEOUT_HOURS)),
        )


@dataclass(frozen=True)
class ApprovalTemplate:
    """A reusable, scoped definition of the steps a request must pass.

    ``department_id`` None means any department; ``min_amount`` and
    ``max_amount`` None mean unbounded on that side.
    """

    template_id: UUID
    name: str
    steps: tuple[ApprovalStepDefinition, ...]
    department_id: UUID | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    is_default: bool = False
    is_active: bool = True
    description: str | None = None

    @property
    def ordered_steps(self) -> tuple[ApprovalStepDefinition, ...]:
        return tuple(sorted(self.steps, key=lambda s: s.step_order))

    @property
    def levels(self) -> tuple[ApprovalLevel, ...]:
        return tuple(s.role for s in self.ordered_steps)


# =========================================================================
# Materialized chain
# =========================================================================


@dataclass(frozen=True)
class RequestApproval:
    """One materialized step of one request's chain.

    ``approved_at`` is the decision time, for rejections as well.
    """

    approval_id: UUID
    request_id: UUID
    approval_level: ApprovalLevel
    order_sequence: int
    status: StepStatus = StepStatus.PENDING
    is_required: bool = True
    timeout_hours: int = DEFAULT_STEP_TIMEOUT_HOURS
    approver_id: UUID | None = None
    approved_at: datetime | None = None
    comments: str | None = None
    created_at: datetime | None = None

    @property
    def is_decided(self) -> bool:
        return self.status != StepStatus.PENDING


@dataclass(frozen=True)
class AdvanceResult:
    """Outcome of a successful ``advance`` call."""

    decided_step: RequestApproval
    next_step: RequestApproval | None
    status_label: str

    @property
    def chain_complete(self) -> bool:
        return self.next_step is None
