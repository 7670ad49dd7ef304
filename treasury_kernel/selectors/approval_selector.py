"""
Module: treasury_kernel.selectors.approval_selector
Responsibility: Read access to approval chains and approver inbox rows.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Chains are always returned ordered by order_sequence.
    - Inbox candidates only include submitted, non-withdrawn requests
      whose projected status is one of the ``pending_<level>`` labels.
      Whether the viewer may act is decided by the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from treasury_kernel.domain.approval import ApprovalLevel, RequestApproval
from treasury_kernel.domain.money_request import (
    PENDING_PREFIX,
    MoneyRequest,
    RequestPhase,
)
from treasury_kernel.models.approval import RequestApprovalModel
from treasury_kernel.models.directory import DepartmentModel, ProfileModel
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.selectors.base import BaseSelector

UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class InboxCandidate:
    """An in-progress request with its chain and display names."""

    request: MoneyRequest
    steps: tuple[RequestApproval, ...]
    department_name: str
    requester_name: str


class ApprovalSelector(BaseSelector):
    """Queries over request_approvals."""

    def get_chain(self, request_id: UUID) -> tuple[RequestApproval, ...]:
        rows = self.session.scalars(
            select(RequestApprovalModel)
            .where(RequestApprovalModel.request_id == request_id)
            .order_by(RequestApprovalModel.order_sequence)
            .execution_options(populate_existing=True)
        ).all()
        return tuple(r.to_dto() for r in rows)

    def inbox_candidates(
        self,
        levels: Iterable[ApprovalLevel] | None = None,
    ) -> list[InboxCandidate]:
        """In-progress requests, oldest first.

        Args:
            levels: Restrict to requests currently awaiting one of these
                levels.  None means every level (override approvers).
        """
        if levels is None:
            status_filter = MoneyRequestModel.status.like(f"{PENDING_PREFIX}%")
        else:
            labels = [f"{PENDING_PREFIX}{level.value}" for level in levels]
            if not labels:
                return []
            status_filter = MoneyRequestModel.status.in_(labels)

        stmt = (
            select(MoneyRequestModel, DepartmentModel.name, ProfileModel)
            .outerjoin(
                DepartmentModel,
                DepartmentModel.id == MoneyRequestModel.requesting_department_id,
            )
            .outerjoin(ProfileModel, ProfileModel.id == MoneyRequestModel.requester_id)
            .where(
                MoneyRequestModel.phase == RequestPhase.SUBMITTED.value,
                MoneyRequestModel.withdrawn_at.is_(None),
                status_filter,
            )
            .order_by(MoneyRequestModel.created_at, MoneyRequestModel.id)
        )

        rows = self.session.execute(stmt).all()
        chains = self._chains_for([model.id for model, _, _ in rows])

        candidates = []
        for model, department_name, profile in rows:
            requester_name = profile.full_name if profile is not None else None
            candidates.append(
                InboxCandidate(
                    request=model.to_dto(),
                    steps=chains.get(model.id, ()),
                    department_name=department_name or UNKNOWN_NAME,
                    requester_name=requester_name or UNKNOWN_NAME,
                )
            )
        return candidates

    def _chains_for(self, request_ids: list[UUID]) -> dict[UUID, tuple[RequestApproval, ...]]:
        if not request_ids:
            return {}
        rows = self.session.scalars(
            select(RequestApprovalModel)
            .where(RequestApprovalModel.request_id.in_(request_ids))
            .order_by(RequestApprovalModel.request_id, RequestApprovalModel.order_sequence)
            .execution_options(populate_existing=True)
        ).all()
        chains: dict[UUID, list[RequestApproval]] = {}
        for row in rows:
            chains.setdefault(row.request_id, []).append(row.to_dto())
        return {request_id: tuple(steps) for request_id, steps in chains.items()}
