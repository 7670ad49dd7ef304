"""
Module: treasury_kernel.selectors.money_request_selector
Responsibility: Read access to money requests.
Architecture position: Kernel > Selectors.  Read-only.

Withdrawn requests are hidden unless asked for explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select

from treasury_kernel.domain.money_request import MoneyRequest
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.models.status_history import StatusHistoryModel
from treasury_kernel.selectors.base import BaseSelector


class MoneyRequestSelector(BaseSelector):

    def get(self, request_id: UUID, include_withdrawn: bool = False) -> MoneyRequest | None:
        model = self.session.get(MoneyRequestModel, request_id)
        if model is None:
            return None
        if model.is_withdrawn and not include_withdrawn:
            return None
        return model.to_dto()

    def list_requests(
        self,
        *,
        status: str | None = None,
        department_id: UUID | None = None,
        visible_to_requester: UUID | None = None,
        visible_departments: Iterable[UUID] | None = None,
    ) -> list[MoneyRequest]:
        """Requests newest first.

        ``visible_to_requester`` and ``visible_departments`` together form
        a visibility filter: a row is returned if the viewer requested it
        or it belongs to one of the departments.  Leave both None for an
        unrestricted listing.
        """
        stmt = select(MoneyRequestModel).where(MoneyRequestModel.withdrawn_at.is_(None))
        if status is not None:
            stmt = stmt.where(MoneyRequestModel.status == status)
        if department_id is not None:
            stmt = stmt.where(MoneyRequestModel.requesting_department_id == department_id)

        if visible_to_requester is not None or visible_departments is not None:
            clauses = []
            if visible_to_requester is not None:
                clauses.append(MoneyRequestModel.requester_id == visible_to_requester)
            departments = list(visible_departments or ())
            if departments:
                clauses.append(MoneyRequestModel.requesting_department_id.in_(departments))
            stmt = stmt.where(or_(*clauses))

        stmt = stmt.order_by(MoneyRequestModel.created_at.desc(), MoneyRequestModel.id)
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def status_history(self, request_id: UUID) -> list[tuple[str | None, str, UUID | None, str | None]]:
        """(old_status, new_status, changed_by, reason) in the order recorded."""
        rows = self.session.scalars(
            select(StatusHistoryModel)
            .where(StatusHistoryModel.request_id == request_id)
            .order_by(StatusHistoryModel.sequence)
        ).all()
        return [(r.old_status, r.new_status, r.changed_by, r.reason) for r in rows]
