"""
Module: treasury_kernel.models.money_request
Responsibility: ORM persistence for money requests.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - amount > 0 (DB check constraint).
    - phase is one of draft/submitted/paid (DB check constraint).
    - status is a projection of phase + chain state.  It is written only
      by RequestStatusProjector, in the same flush as the approval rows
      it is derived from.
    - Requests are never physically deleted by the services; withdrawal
      sets ``withdrawn_at``.

Failure modes:
    - IntegrityError on non-positive amount or unknown phase.

Audit relevance:
    Every status change is mirrored to money_request_status_history.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treasury_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from treasury_kernel.domain.money_request import MoneyRequest
    from treasury_kernel.models.approval import RequestApprovalModel


class MoneyRequestModel(TrackedBase):
    """Persistent money request.

    Contract:
        Only the requester may edit while phase is ``draft``.  After
        submission, rows change only through chain advancement and
        disbursement.
    """

    __tablename__ = "money_requests"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_money_requests_positive_amount"),
        CheckConstraint(
            "phase IN ('draft', 'submitted', 'paid')",
            name="ck_money_requests_valid_phase",
        ),
        Index("ix_money_requests_status", "status"),
        Index("ix_money_requests_department", "requesting_department_id"),
        Index("ix_money_requests_requester", "requester_id"),
    )

    requesting_department_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False,
    )
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    fund_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    associated_project: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_templates.id"), nullable=True,
    )

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    withdrawn_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approvals: Mapped[list["RequestApprovalModel"]] = relationship(
        "RequestApprovalModel",
        back_populates="request",
        order_by="RequestApprovalModel.order_sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn_at is not None

    def __repr__(self) -> str:
        return f"<MoneyRequest {self.id} {self.amount} status={self.status}>"

    def to_dto(self) -> MoneyRequest:
        """Convert ORM model to frozen domain DTO."""
        from treasury_kernel.domain.money_request import (
            MoneyRequest as MoneyRequestDTO,
            RequestPhase,
            parse_status_label,
        )

        return MoneyRequestDTO(
            request_id=self.id,
            requesting_department_id=self.requesting_department_id,
            requester_id=self.requester_id,
            fund_id=self.fund_id,
            amount=self.amount,
            purpose=self.purpose,
            status=parse_status_label(self.status, self.rejection_reason),
            phase=RequestPhase(self.phase),
            description=self.description,
            suggested_vendor=self.suggested_vendor,
            associated_project=self.associated_project,
            template_id=self.template_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            paid_at=self.paid_at,
        )
