"""
Module: treasury_kernel.models.notification
Responsibility: Outbox of notification intents.

Architecture position: Kernel > Models.

Invariants enforced:
    - Each row names either a recipient user or a recipient role
      (optionally department-scoped).
    - Rows are written in the same transaction as the decision that
      produced them; delivery is an external job that flips ``status``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString


class NotificationModel(Base):
    """A notification waiting for external delivery."""

    __tablename__ = "notification_queue"

    __table_args__ = (
        CheckConstraint(
            "recipient_user_id IS NOT NULL OR recipient_role IS NOT NULL",
            name="ck_notification_queue_has_recipient",
        ),
        CheckConstraint(
            "kind IN ('status_changed', 'approval_needed')",
            name="ck_notification_queue_valid_kind",
        ),
        Index("ix_notification_queue_status", "status", "created_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("money_requests.id"), nullable=False,
    )
    recipient_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    recipient_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    recipient_department_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        recipient = self.recipient_user_id or self.recipient_role
        return f"<Notification {self.kind} -> {recipient} status={self.status}>"
