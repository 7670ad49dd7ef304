"""
treasury_services.status_projection -- Money request status projector.

Responsibility:
    Derives a request's status variant from its lifecycle phase and
    approval chain (``treasury_engines.approval.derive_status``) and
    writes the projection: the ``status`` label, ``approved_at``,
    ``rejected_at`` and ``rejection_reason``.  Each change appends a
    status history row and queues notification intents.

Architecture position:
    Services layer.  Flush-only.

Invariants enforced:
    - This is the ONLY writer of ``money_requests.status``.  Every other
      component changes phase or steps and then calls ``sync`` in the same
      transaction, so the stored status never contradicts the steps.
    - History rows are numbered per request without gaps.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from treasury_engines.approval import current_step, derive_status
from treasury_kernel.domain.approval import RequestApproval
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.money_request import (
    Approved,
    AwaitingApproval,
    Draft,
    Rejected,
    RequestPhase,
    RequestStatus,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.models.status_history import StatusHistoryModel
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.notification_service import NotificationService

logger = get_logger("services.status_projection")


class RequestStatusProjector(BaseService):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._notifications = notifications

    def sync(
        self,
        model: MoneyRequestModel,
        steps: Sequence[RequestApproval],
        *,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> RequestStatus:
        """Project phase + steps onto ``model`` and record the change.

        Returns the derived status.  Nothing is written when the label is
        unchanged.
        """
        if model.id is None:
            self.session.flush()

        status = derive_status(RequestPhase(model.phase), steps)
        old_label = model.status if self._has_history(model.id) else None
        if old_label == status.label:
            return status

        now = self._clock.now()
        model.status = status.label
        model.updated_at = now
        if isinstance(status, Approved) and model.approved_at is None:
            model.approved_at = now
        if isinstance(status, Rejected):
            model.rejected_at = now
            model.rejection_reason = status.reason

        self.session.add(
            StatusHistoryModel(
                request_id=model.id,
                sequence=self._next_sequence(model.id),
                old_status=old_label,
                new_status=status.label,
                changed_by=actor_id,
                reason=reason,
                created_at=now,
            )
        )
        self.session.flush()

        logger.info(
            "money_request_status_changed",
            extra={
                "request_id": str(model.id),
                "old_status": old_label,
                "new_status": status.label,
            },
        )

        if self._notifications is not None and old_label is not None:
            self._emit(model, steps, status)
        return status

    def _emit(
        self,
        model: MoneyRequestModel,
        steps: Sequence[RequestApproval],
        status: RequestStatus,
    ) -> None:
        if isinstance(status, Draft):
            return
        request = model.to_dto()
        self._notifications.notify_status_changed(request)
        if isinstance(status, AwaitingApproval):
            step = current_step(steps)
            if step is not None:
                self._notifications.notify_approval_needed(request, step)

    def _has_history(self, request_id: UUID) -> bool:
        return self._next_sequence(request_id) > 1

    def _next_sequence(self, request_id: UUID) -> int:
        last = self.session.scalar(
            select(func.max(StatusHistoryModel.sequence))
            .where(StatusHistoryModel.request_id == request_id)
        )
        return (last or 0) + 1
