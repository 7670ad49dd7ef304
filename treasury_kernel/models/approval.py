"""
Module: treasury_kernel.models.approval
Responsibility: ORM persistence for approval templates and materialized
    approval steps.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - UNIQUE(request_id, order_sequence): a chain can never be materialized
      twice, even if two submit calls race past the service-level guard.
    - Step status limited to pending/approved/rejected (check constraint).
    - At most one template has is_default = true (partial unique index).

Failure modes:
    - IntegrityError on duplicate (request_id, order_sequence).
    - IntegrityError on a second default template.

Audit relevance:
    Each decided step records who acted, when, and with which comment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treasury_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from treasury_kernel.domain.approval import ApprovalTemplate, RequestApproval
    from treasury_kernel.models.money_request import MoneyRequestModel


class ApprovalTemplateModel(TrackedBase):
    """Persistent approval template.

    ``approval_steps`` holds a JSON list of
    ``{role, required, step_order, timeout_hours}``.  Templates are never
    deleted; deactivation sets ``is_active = false``.
    """

    __tablename__ = "approval_templates"

    __table_args__ = (
        CheckConstraint(
            "min_amount IS NULL OR min_amount >= 0",
            name="ck_approval_templates_min_non_negative",
        ),
        CheckConstraint(
            "max_amount IS NULL OR min_amount IS NULL OR min_amount <= max_amount",
            name="ck_approval_templates_bounds_ordered",
        ),
        Index(
            "uq_approval_templates_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
        Index("ix_approval_templates_active", "is_active", "department_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    min_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approval_steps: Mapped[list] = mapped_column(JSON, nullable=False)
    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ApprovalTemplate {self.name} default={self.is_default} "
            f"active={self.is_active}>"
        )

    def to_dto(self) -> ApprovalTemplate:
        """Convert ORM model to frozen domain DTO."""
        from treasury_kernel.domain.approval import (
            ApprovalStepDefinition,
            ApprovalTemplate as ApprovalTemplateDTO,
        )

        return ApprovalTemplateDTO(
            template_id=self.id,
            name=self.name,
            steps=tuple(
                ApprovalStepDefinition.from_dict(s) for s in self.approval_steps
            ),
            department_id=self.department_id,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            is_default=self.is_default,
            is_active=self.is_active,
            description=self.description,
        )


class RequestApprovalModel(Base):
    """One materialized step of a request's approval chain.

    Contract:
        Created pending with approver_id null.  Decided exactly once via a
        conditional UPDATE guarded on ``status = 'pending'``.
    """

    __tablename__ = "request_approvals"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "order_sequence",
            name="uq_request_approvals_order",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_request_approvals_valid_status",
        ),
        CheckConstraint(
            "order_sequence > 0",
            name="ck_request_approvals_positive_order",
        ),
        Index("ix_request_approvals_level_status", "approval_level", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("money_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    approval_level: Mapped[str] = mapped_column(String(50), nullable=False)
    order_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    is_required: Mapped[bool] = mapped_column(default=True, nullable=False)
    timeout_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped["MoneyRequestModel"] = relationship(
        "MoneyRequestModel", back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<RequestApproval {self.request_id}#{self.order_sequence} "
            f"{self.approval_level} status={self.status}>"
        )

    def to_dto(self) -> RequestApproval:
        """Convert ORM model to frozen domain DTO."""
        from treasury_kernel.domain.approval import (
            ApprovalLevel,
            RequestApproval as RequestApprovalDTO,
            StepStatus,
        )

        return RequestApprovalDTO(
            approval_id=self.id,
            request_id=self.request_id,
            approval_level=ApprovalLevel(self.approval_level),
            order_sequence=self.order_sequence,
            status=StepStatus(self.status),
            is_required=self.is_required,
            timeout_hours=self.timeout_hours,
            approver_id=self.approver_id,
            approved_at=self.approved_at,
            comments=self.comments,
            created_at=self.created_at,
        )
