"""
treasury_services.money_request_service -- Request lifecycle controller.

Responsibility:
    Commands and queries over money requests: draft creation and editing,
    withdrawal, submission (template resolution + chain initialization),
    disbursement, the approver inbox and chain listings.

Architecture position:
    Services layer.  Flush-only; the caller owns the transaction.
    Authorization questions go to a ``CapabilityOracle``; status is
    written only through ``RequestStatusProjector``.

Invariants enforced:
    - amount > 0 in whole cents and non-empty purpose on every write.
    - Drafts are edited or withdrawn only by their requester.
    - ``submit`` is valid only from draft; a failed template resolution
      leaves the request untouched (the caller's transaction rolls back).
    - ``mark_paid`` only from approved, only with RECORD_DISBURSEMENT.
    - No operation accepts a status value from the caller.

Failure modes:
    - MoneyRequestNotFoundError: unknown or withdrawn request.
    - InvalidMoneyRequestError: bad amount, purpose or unknown field.
    - UnauthorizedError: missing creation, edit, view or payment rights.
    - InvalidTransitionError: action not allowed from the current status.
    - NoTemplateConfiguredError / AmbiguousTemplateMatchError on submit.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_engines.approval import current_step
from treasury_kernel.domain.approval import RequestApproval
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.money_request import (
    MoneyRequest,
    PendingApproval,
    RequestPhase,
)
from treasury_kernel.domain.roles import Capability, CapabilityOracle
from treasury_kernel.exceptions import (
    ChainAlreadyExistsError,
    InvalidMoneyRequestError,
    InvalidTransitionError,
    MoneyRequestNotFoundError,
    UnauthorizedError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.selectors.approval_selector import ApprovalSelector
from treasury_kernel.selectors.money_request_selector import MoneyRequestSelector
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.notification_service import NotificationService
from treasury_services.approval_chain_service import ApprovalChainService
from treasury_services.status_projection import RequestStatusProjector
from treasury_services.template_service import ApprovalTemplateService

logger = get_logger("services.money_request")

_EDITABLE_FIELDS = frozenset({
    "requesting_department_id",
    "fund_id",
    "amount",
    "purpose",
    "description",
    "suggested_vendor",
    "associated_project",
})


def _validated_amount(amount: Any) -> Decimal:
    if isinstance(amount, float):
        raise InvalidMoneyRequestError("amount", "must be a Decimal, not a float")
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidMoneyRequestError("amount", f"not a number: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidMoneyRequestError("amount", "must be greater than zero")
    # whole cents only; template bounds are inclusive cent values
    if value.normalize().as_tuple().exponent < -2:
        raise InvalidMoneyRequestError("amount", "must not have more than two decimal places")
    return value


def _validated_purpose(purpose: str | None) -> str:
    if purpose is None or not purpose.strip():
        raise InvalidMoneyRequestError("purpose", "must not be empty")
    return purpose.strip()


class MoneyRequestService(BaseService):
    """Lifecycle commands and queries for money requests."""

    def __init__(
        self,
        session: Session,
        oracle: CapabilityOracle,
        clock: Clock | None = None,
        templates: ApprovalTemplateService | None = None,
        chain: ApprovalChainService | None = None,
    ):
        super().__init__(session)
        self._oracle = oracle
        self._clock = clock or SystemClock()
        self._projector = RequestStatusProjector(
            session, self._clock, NotificationService(session, self._clock),
        )
        self._templates = templates or ApprovalTemplateService(session, self._clock)
        self._chain = chain or ApprovalChainService(
            session, oracle, self._clock, self._projector,
        )
        self._requests = MoneyRequestSelector(session)
        self._approvals = ApprovalSelector(session)

    # ------------------------------------------------------------------
    # Draft lifecycle
    # ------------------------------------------------------------------

    def create_draft(
        self,
        requester_id: UUID,
        department_id: UUID,
        fund_id: UUID,
        amount: Decimal,
        purpose: str,
        *,
        description: str | None = None,
        suggested_vendor: str | None = None,
        associated_project: str | None = None,
    ) -> MoneyRequest:
        value = _validated_amount(amount)
        cleaned_purpose = _validated_purpose(purpose)
        if not self._oracle.can_create_request_for_department(requester_id, department_id):
            raise UnauthorizedError(
                str(requester_id),
                "create_request",
                f"no role in department {department_id}",
            )

        now = self._clock.now()
        model = MoneyRequestModel(
            requesting_department_id=department_id,
            requester_id=requester_id,
            fund_id=fund_id,
            amount=value,
            purpose=cleaned_purpose,
            description=description,
            suggested_vendor=suggested_vendor,
            associated_project=associated_project,
            phase=RequestPhase.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()
        self._projector.sync(model, (), actor_id=requester_id)

        logger.info(
            "money_request_created",
            extra={
                "request_id": str(model.id),
                "department_id": str(department_id),
                "amount": str(value),
            },
        )
        return model.to_dto()

    def update_draft(self, request_id: UUID, actor_id: UUID, **changes: Any) -> MoneyRequest:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise InvalidMoneyRequestError(
                sorted(unknown)[0], f"cannot be edited; editable: {sorted(_EDITABLE_FIELDS)}",
            )
        model = self._load_draft_for_requester(request_id, actor_id, "update")
        # a routed draft keeps the amount and department its chain was planned for
        if self._approvals.get_chain(request_id):
            raise InvalidTransitionError(str(request_id), model.status, "update routed")

        if "amount" in changes:
            changes["amount"] = _validated_amount(changes["amount"])
        if "purpose" in changes:
            changes["purpose"] = _validated_purpose(changes["purpose"])
        department_id = changes.get("requesting_department_id")
        if department_id is not None and not self._oracle.can_create_request_for_department(
            actor_id, department_id,
        ):
            raise UnauthorizedError(
                str(actor_id), "update_request", f"no role in department {department_id}",
            )

        for field_name, value in changes.items():
            setattr(model, field_name, value)
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "money_request_updated",
            extra={"request_id": str(request_id), "fields": sorted(changes)},
        )
        return model.to_dto()

    def withdraw(self, request_id: UUID, actor_id: UUID) -> None:
        """Soft delete a draft.  It disappears from every listing."""
        model = self._load_draft_for_requester(request_id, actor_id, "withdraw")
        now = self._clock.now()
        model.withdrawn_at = now
        model.updated_at = now
        self.session.flush()
        logger.info("money_request_withdrawn", extra={"request_id": str(request_id)})

    def submit(self, request_id: UUID, actor_id: UUID | None = None) -> MoneyRequest:
        """Resolve the template and materialize the chain.

        A draft whose chain was already initialized from the template that
        resolves now is submitted with that chain.  Retrying a successful
        submit fails with InvalidTransitionError and never duplicates steps.

        Raises:
            ChainAlreadyExistsError: the draft was routed through a
                different template than the one that resolves now.
        """
        model = self._load(request_id, for_update=True)
        if model.phase != RequestPhase.DRAFT.value:
            raise InvalidTransitionError(str(request_id), model.status, "submit")
        if actor_id is not None and actor_id != model.requester_id:
            raise UnauthorizedError(str(actor_id), "submit_request", "not the requester")

        template = self._templates.resolve_template(
            model.requesting_department_id, model.amount,
        )
        existing = self._approvals.get_chain(request_id)
        if existing and model.template_id != template.template_id:
            raise ChainAlreadyExistsError(str(request_id), len(existing))

        now = self._clock.now()
        model.phase = RequestPhase.SUBMITTED.value
        model.submitted_at = now
        model.updated_at = now
        self.session.flush()

        submitter = actor_id or model.requester_id
        if existing:
            self._projector.sync(model, existing, actor_id=submitter)
        else:
            self._chain.initialize_chain(request_id, template, actor_id=submitter)

        logger.info(
            "money_request_submitted",
            extra={
                "request_id": str(request_id),
                "template_id": str(template.template_id),
                "status": model.status,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Disbursement
    # ------------------------------------------------------------------

    def mark_paid(self, request_id: UUID, actor_id: UUID) -> MoneyRequest:
        if not self._oracle.has_capability(actor_id, Capability.RECORD_DISBURSEMENT):
            raise UnauthorizedError(str(actor_id), "mark_paid", "cannot record disbursements")

        model = self._load(request_id, for_update=True)
        if model.status != "approved":
            raise InvalidTransitionError(str(request_id), model.status, "mark_paid")

        now = self._clock.now()
        model.phase = RequestPhase.PAID.value
        model.paid_at = now
        self.session.flush()
        self._projector.sync(
            model, self._approvals.get_chain(request_id), actor_id=actor_id,
        )

        logger.info("money_request_paid", extra={"request_id": str(request_id)})
        return model.to_dto()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID, viewer_id: UUID | None = None) -> MoneyRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise MoneyRequestNotFoundError(str(request_id))
        if viewer_id is not None and not self._oracle.can_view_request(
            viewer_id, request.requester_id, request.requesting_department_id,
        ):
            raise UnauthorizedError(str(viewer_id), "view_request")
        return request

    def list_requests(
        self,
        viewer_id: UUID,
        status: str | None = None,
        department_id: UUID | None = None,
    ) -> list[MoneyRequest]:
        """Requests the viewer may see, newest first."""
        requests = self._requests.list_requests(status=status, department_id=department_id)
        return [
            r for r in requests
            if self._oracle.can_view_request(
                viewer_id, r.requester_id, r.requesting_department_id,
            )
        ]

    def get_pending_approvals_for(self, user_id: UUID) -> list[PendingApproval]:
        """The approver inbox: requests whose current step the user may decide."""
        levels = self._oracle.approval_levels_for(user_id)
        inbox: list[PendingApproval] = []
        for candidate in self._approvals.inbox_candidates(levels):
            step = current_step(candidate.steps)
            if step is None:
                continue
            request = candidate.request
            if not self._oracle.can_approve_at_level(
                user_id, step.approval_level, request.requesting_department_id,
            ):
                continue
            inbox.append(
                PendingApproval(
                    request_id=request.request_id,
                    amount=request.amount,
                    purpose=request.purpose,
                    department_name=candidate.department_name,
                    requester_name=candidate.requester_name,
                    created_at=request.created_at,
                    approval_level=step.approval_level,
                    approval_id=step.approval_id,
                )
            )
        return inbox

    def get_request_approvals(self, request_id: UUID) -> tuple[RequestApproval, ...]:
        """The chain in order_sequence order."""
        self._load(request_id)
        return self._approvals.get_chain(request_id)

    def get_status_history(
        self, request_id: UUID,
    ) -> list[tuple[str | None, str, UUID | None, str | None]]:
        """(old_status, new_status, changed_by, reason), oldest first."""
        self._load(request_id)
        return self._requests.status_history(request_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: UUID, for_update: bool = False) -> MoneyRequestModel:
        stmt = select(MoneyRequestModel).where(
            MoneyRequestModel.id == request_id,
            MoneyRequestModel.withdrawn_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.scalars(stmt).one_or_none()
        if model is None:
            raise MoneyRequestNotFoundError(str(request_id))
        return model

    def _load_draft_for_requester(
        self, request_id: UUID, actor_id: UUID, action: str,
    ) -> MoneyRequestModel:
        model = self._load(request_id, for_update=True)
        if model.requester_id != actor_id:
            raise UnauthorizedError(str(actor_id), f"{action}_request", "not the requester")
        if model.phase != RequestPhase.DRAFT.value:
            raise InvalidTransitionError(str(request_id), model.status, action)
        return model
