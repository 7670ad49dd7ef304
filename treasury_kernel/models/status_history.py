"""
Module: treasury_kernel.models.status_history
Responsibility: Append-only log of money request status changes.

Architecture position: Kernel > Models.

Invariants enforced:
    - Rows are immutable: ORM listeners reject UPDATE and DELETE.

Audit relevance:
    Reconstructs who moved a request between statuses, when, and why.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.exceptions import ImmutabilityViolationError


class StatusHistoryModel(Base):
    """One status transition of one money request. Append-only."""

    __tablename__ = "money_request_status_history"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_status_history_sequence"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("money_requests.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StatusHistory {self.request_id} "
            f"{self.old_status} -> {self.new_status}>"
        )


@event.listens_for(StatusHistoryModel, "before_update")
def prevent_status_history_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StatusHistory",
        entity_id=str(target.id),
        reason="Status history is append-only -- cannot modify",
    )


@event.listens_for(StatusHistoryModel, "before_delete")
def prevent_status_history_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StatusHistory",
        entity_id=str(target.id),
        reason="Status history is append-only -- cannot delete",
    )
