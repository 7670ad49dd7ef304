"""
treasury_kernel.services.notification_service -- Notification outbox writer.

Responsibility:
    Records notification intents (status changes for the requester,
    "approval needed" for the next approver role) in ``notification_queue``.
    Delivery is an external job; it reads pending rows and calls
    ``mark_sent``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Intents are flushed in the caller's transaction, so a rolled-back
      decision never leaves a notification behind.
    - Department-scoped approval levels address the role within the
      request's department; church-wide levels address the role alone.
"""

from __future__ import annotations

from uuid import UUID

from treasury_kernel.domain.approval import RequestApproval
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.money_request import (
    Approved,
    AwaitingApproval,
    MoneyRequest,
    Rejected,
    RequestStatus,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.notification import NotificationModel
from treasury_kernel.services.base import BaseService

logger = get_logger("services.notification")

KIND_STATUS_CHANGED = "status_changed"
KIND_APPROVAL_NEEDED = "approval_needed"


def describe_status(status: RequestStatus) -> str:
    """Human-readable phrase for a status variant."""
    if isinstance(status, AwaitingApproval):
        return f"awaiting approval by the {status.level.label}"
    if isinstance(status, Rejected):
        return f"rejected: {status.reason}" if status.reason else "rejected"
    if isinstance(status, Approved):
        return "fully approved"
    return status.label


class NotificationService(BaseService):
    """Writes notification intents to the outbox table."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def notify_status_changed(self, request: MoneyRequest) -> NotificationModel:
        """Tell the requester their request moved to ``request.status``."""
        row = NotificationModel(
            request_id=request.request_id,
            recipient_user_id=request.requester_id,
            kind=KIND_STATUS_CHANGED,
            subject=f"Money request {request.status.label.replace('_', ' ')}",
            body=(
                f"Your request for {request.amount} ({request.purpose}) is now "
                f"{describe_status(request.status)}."
            ),
            status="pending",
            created_at=self._clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "notification_queued",
            extra={
                "request_id": str(request.request_id),
                "kind": KIND_STATUS_CHANGED,
                "recipient_user_id": str(request.requester_id),
            },
        )
        return row

    def notify_approval_needed(
        self,
        request: MoneyRequest,
        step: RequestApproval,
    ) -> NotificationModel:
        """Tell the holders of ``step.approval_level`` it is their turn."""
        department_id = (
            request.requesting_department_id
            if step.approval_level.is_department_scoped
            else None
        )
        row = NotificationModel(
            request_id=request.request_id,
            recipient_role=step.approval_level.value,
            recipient_department_id=department_id,
            kind=KIND_APPROVAL_NEEDED,
            subject="Money request awaiting your approval",
            body=(
                f"A request for {request.amount} ({request.purpose}) needs "
                f"{step.approval_level.label} approval "
                f"(step {step.order_sequence}, respond within "
                f"{step.timeout_hours} hours)."
            ),
            status="pending",
            created_at=self._clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "notification_queued",
            extra={
                "request_id": str(request.request_id),
                "kind": KIND_APPROVAL_NEEDED,
                "recipient_role": step.approval_level.value,
            },
        )
        return row

    def mark_sent(self, notification_id: UUID) -> None:
        """Called by the delivery job once a notification went out."""
        row = self.session.get(NotificationModel, notification_id)
        if row is None:
            logger.warning(
                "notification_not_found",
                extra={"notification_id": str(notification_id)},
            )
            return
        row.status = "sent"
        row.sent_at = self._clock.now()
        self.session.flush()
