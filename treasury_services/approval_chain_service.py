"""
treasury_services.approval_chain_service -- Sequential approval chain.

Responsibility:
    Materializes a request's approval steps from its template, answers
    "which step is current" and "may this user act on it", and records
    decisions.  The state-machine rules live in ``treasury_engines.approval``;
    this service adds persistence, locking and authorization.

Architecture position:
    Services layer.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - A chain is materialized at most once per request (service guard plus
      UNIQUE(request_id, order_sequence)).
    - Steps are decided strictly in order: only ``current_step`` can be
      decided, and a rejection leaves no current step.
    - Linearizable advancement per request: the request row is locked
      (SELECT ... FOR UPDATE) and the decision is a conditional UPDATE on
      ``status = 'pending'``.  Losing a race raises StepAlreadyDecidedError.
    - The decided step and the request status derived from it are flushed
      in the same transaction (RequestStatusProjector).

Failure modes:
    - MoneyRequestNotFoundError: unknown request id.
    - ChainAlreadyExistsError: chain rows already exist.
    - InvalidTransitionError: chain initialization on a paid request.
    - NoPendingStepError: chain complete, rejected, or never created.
    - StepAlreadyDecidedError: race lost, or a stale ``expected_approval_id``.
    - UnauthorizedApproverError: actor may not act at the current level.
    - ReasonRequiredError: rejection without comments.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from treasury_engines.approval import (
    current_step,
    next_step_after,
    plan_chain,
    validate_decision,
)
from treasury_kernel.domain.approval import (
    AdvanceResult,
    ApprovalDecision,
    ApprovalTemplate,
    RequestApproval,
    StepStatus,
)
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.money_request import RequestPhase
from treasury_kernel.domain.roles import CapabilityOracle
from treasury_kernel.exceptions import (
    ChainAlreadyExistsError,
    InvalidTransitionError,
    MoneyRequestNotFoundError,
    NoPendingStepError,
    StepAlreadyDecidedError,
    UnauthorizedApproverError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.approval import RequestApprovalModel
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.notification_service import NotificationService
from treasury_services.status_projection import RequestStatusProjector

logger = get_logger("services.approval_chain")


class ApprovalChainService(BaseService):
    """Creates, inspects and advances approval chains."""

    def __init__(
        self,
        session: Session,
        oracle: CapabilityOracle,
        clock: Clock | None = None,
        projector: RequestStatusProjector | None = None,
    ):
        super().__init__(session)
        self._oracle = oracle
        self._clock = clock or SystemClock()
        self._projector = projector or RequestStatusProjector(
            session, self._clock, NotificationService(session, self._clock),
        )

    # ------------------------------------------------------------------
    # Chain creation
    # ------------------------------------------------------------------

    def initialize_chain(
        self,
        request_id: UUID,
        template: ApprovalTemplate,
        actor_id: UUID | None = None,
    ) -> tuple[RequestApproval, ...]:
        """Create one pending step per template step, in step order."""
        model = self._load_request(request_id, for_update=True)
        if model.phase == RequestPhase.PAID.value:
            raise InvalidTransitionError(str(request_id), model.status, "initialize_chain")

        existing = self.session.scalar(
            select(func.count())
            .select_from(RequestApprovalModel)
            .where(RequestApprovalModel.request_id == request_id)
        )
        if existing:
            raise ChainAlreadyExistsError(str(request_id), existing)

        now = self._clock.now()
        for step in plan_chain(template):
            self.session.add(
                RequestApprovalModel(
                    request_id=request_id,
                    approval_level=step.role.value,
                    order_sequence=step.step_order,
                    status=StepStatus.PENDING.value,
                    is_required=step.required,
                    timeout_hours=step.timeout_hours,
                    created_at=now,
                )
            )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ChainAlreadyExistsError(str(request_id), len(template.steps)) from exc
        self.session.expire(model, ["approvals"])
        model.template_id = template.template_id

        steps = self._fetch_steps(request_id)
        self._projector.sync(model, steps, actor_id=actor_id)

        logger.info(
            "approval_chain_initialized",
            extra={
                "request_id": str(request_id),
                "template_id": str(template.template_id),
                "step_count": len(steps),
                "levels": [s.approval_level.value for s in steps],
            },
        )
        return steps

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_chain(self, request_id: UUID) -> tuple[RequestApproval, ...]:
        self._load_request(request_id)
        return self._fetch_steps(request_id)

    def current_step(self, request_id: UUID) -> RequestApproval | None:
        return current_step(self.get_chain(request_id))

    def can_act(self, user_id: UUID, request_id: UUID) -> bool:
        model = self._load_request(request_id)
        step = current_step(self._fetch_steps(request_id))
        if step is None:
            return False
        return self._oracle.can_approve_at_level(
            user_id, step.approval_level, model.requesting_department_id,
        )

    # ------------------------------------------------------------------
    # Advancement
    # ------------------------------------------------------------------

    def advance(
        self,
        request_id: UUID,
        actor_id: UUID,
        decision: ApprovalDecision,
        comments: str | None = None,
        expected_approval_id: UUID | None = None,
    ) -> AdvanceResult:
        """Record ``decision`` on the current step.

        Args:
            request_id: The request whose chain advances.
            actor_id: The approver.
            decision: approved or rejected.
            comments: Optional for approval, mandatory for rejection.
            expected_approval_id: The step the caller believes is current
                (from the inbox).  A mismatch means someone else acted
                first.
        """
        model = self._load_request(request_id, for_update=True)

        step = current_step(self._fetch_steps(request_id))
        if step is None:
            raise NoPendingStepError(str(request_id), model.status)

        if expected_approval_id is not None and step.approval_id != expected_approval_id:
            raise StepAlreadyDecidedError(str(request_id), str(expected_approval_id))

        if not self._oracle.can_approve_at_level(
            actor_id, step.approval_level, model.requesting_department_id,
        ):
            logger.warning(
                "approval_unauthorized",
                extra={
                    "request_id": str(request_id),
                    "actor_id": str(actor_id),
                    "approval_level": step.approval_level.value,
                },
            )
            raise UnauthorizedApproverError(
                str(actor_id), str(request_id), step.approval_level.value,
            )

        cleaned = validate_decision(request_id, decision, comments)

        now = self._clock.now()
        result = self.session.execute(
            update(RequestApprovalModel)
            .where(
                RequestApprovalModel.id == step.approval_id,
                RequestApprovalModel.status == StepStatus.PENDING.value,
            )
            .values(
                status=decision.step_status.value,
                approver_id=actor_id,
                approved_at=now,
                comments=cleaned,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "approval_step_race_lost",
                extra={"request_id": str(request_id), "approval_id": str(step.approval_id)},
            )
            raise StepAlreadyDecidedError(str(request_id), str(step.approval_id))

        self.session.expire(model, ["approvals"])
        steps = self._fetch_steps(request_id)
        decided = next(s for s in steps if s.approval_id == step.approval_id)
        upcoming = (
            next_step_after(steps, decided.order_sequence)
            if decision == ApprovalDecision.APPROVED
            else None
        )
        status = self._projector.sync(model, steps, actor_id=actor_id, reason=cleaned)

        logger.info(
            "approval_step_decided",
            extra={
                "request_id": str(request_id),
                "approval_id": str(decided.approval_id),
                "approval_level": decided.approval_level.value,
                "decision": decision.value,
                "status": status.label,
            },
        )
        return AdvanceResult(
            decided_step=decided,
            next_step=upcoming,
            status_label=status.label,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_request(self, request_id: UUID, for_update: bool = False) -> MoneyRequestModel:
        stmt = select(MoneyRequestModel).where(MoneyRequestModel.id == request_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.scalars(stmt).one_or_none()
        if model is None:
            raise MoneyRequestNotFoundError(str(request_id))
        return model

    def _fetch_steps(self, request_id: UUID) -> tuple[RequestApproval, ...]:
        rows = self.session.scalars(
            select(RequestApprovalModel)
            .where(RequestApprovalModel.request_id == request_id)
            .order_by(RequestApprovalModel.order_sequence)
            .execution_options(populate_existing=True)
        ).all()
        return tuple(r.to_dto() for r in rows)
