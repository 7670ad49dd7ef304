"""
Money request domain types (``treasury_kernel.domain.money_request``).

Responsibility
--------------
The request aggregate as seen by callers, its persisted lifecycle phase,
and the tagged status variant derived from phase + chain state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* The status variant encodes both lifecycle phase and whose turn it is:
  ``Draft | Submitted | AwaitingApproval(level) | Approved |
  Rejected(reason) | Paid``.  Its ``label`` is the value persisted in
  ``money_requests.status`` for querying.
* ``parse_status_label`` is the exact inverse of ``label``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from treasury_kernel.domain.approval import ApprovalLevel


class RequestPhase(str, Enum):
    """Persisted lifecycle phase.  Everything finer comes from the chain."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAID = "paid"


# =========================================================================
# Status variant
# =========================================================================


@dataclass(frozen=True)
class RequestStatus:
    """Base of the status variant.  Use the concrete subclasses."""

    is_terminal = False

    @property
    def label(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Draft(RequestStatus):
    @property
    def label(self) -> str:
        return "draft"


@dataclass(frozen=True)
class Submitted(RequestStatus):
    """Submitted but no chain materialized (imported or legacy rows)."""

    @property
    def label(self) -> str:
        return "submitted"


@dataclass(frozen=True)
class AwaitingApproval(RequestStatus):
    level: ApprovalLevel

    @property
    def label(self) -> str:
        return f"{PENDING_PREFIX}{self.level.value}"


@dataclass(frozen=True)
class Approved(RequestStatus):
    is_terminal = True

    @property
    def label(self) -> str:
        return "approved"


@dataclass(frozen=True)
class Rejected(RequestStatus):
    reason: str = ""
    is_terminal = True

    @property
    def label(self) -> str:
        return "rejected"


@dataclass(frozen=True)
class Paid(RequestStatus):
    is_terminal = True

    @property
    def label(self) -> str:
        return "paid"


PENDING_PREFIX = "pending_"

STATUS_LABELS: frozenset[str] = frozenset(
    {"draft", "submitted", "approved", "rejected", "paid"}
    | {f"{PENDING_PREFIX}{level.value}" for level in ApprovalLevel}
)


def parse_status_label(label: str, rejection_reason: str | None = None) -> RequestStatus:
    """Rebuild the status variant from its persisted label.

    Raises:
        ValueError: if ``label`` is not a known status label.
    """
    if label == "draft":
        return Draft()
    if label == "submitted":
        return Submitted()
    if label == "approved":
        return Approved()
    if label == "rejected":
        return Rejected(reason=rejection_reason or "")
    if label == "paid":
        return Paid()
    if label.startswith(PENDING_PREFIX):
        return AwaitingApproval(level=ApprovalLevel(label[len(PENDING_PREFIX):]))
    raise ValueError(f"Unknown money request status: {label!r}")


# =========================================================================
# Aggregate and read models
# =========================================================================


@dataclass(frozen=True)
class MoneyRequest:
    """Immutable snapshot of a money request."""

    request_id: UUID
    requesting_department_id: UUID
    requester_id: UUID
    fund_id: UUID
    amount: Decimal
    purpose: str
    status: RequestStatus
    phase: RequestPhase = RequestPhase.DRAFT
    description: str | None = None
    suggested_vendor: str | None = None
    associated_project: str | None = None
    template_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    paid_at: datetime | None = None

    @property
    def status_label(self) -> str:
        return self.status.label


@dataclass(frozen=True)
class PendingApproval:
    """One row of an approver's inbox."""

    request_id: UUID
    amount: Decimal
    purpose: str
    department_name: str
    requester_name: str
    created_at: datetime
    approval_level: ApprovalLevel
    approval_id: UUID | None = None
