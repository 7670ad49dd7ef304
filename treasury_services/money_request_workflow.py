"""
treasury_services.money_request_workflow -- Public entry point for callers.

Responsibility:
    Exposes the money request operations (template resolution, request
    creation and submission, the approver inbox, chain advancement, chain
    listing, disbursement, template administration).  Every call runs in
    its own transaction and binds actor/request ids into the log context.

Architecture position:
    Services layer -- the transaction owner.  Builds the flush-only
    services per call on a fresh session from ``session_scope()``.

Invariants enforced:
    - One call, one transaction: commit on success, rollback on any
      exception, so a decision and the status derived from it are
      committed together or not at all.
    - Domain errors propagate unchanged to the caller; nothing is retried.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from treasury_config.bridges import build_capability_grants
from treasury_config.schema import TreasuryConfigurationSet
from treasury_kernel.db.engine import session_scope
from treasury_kernel.domain.approval import (
    AdvanceResult,
    ApprovalDecision,
    ApprovalStepDefinition,
    ApprovalTemplate,
    RequestApproval,
)
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.money_request import MoneyRequest, PendingApproval
from treasury_kernel.domain.roles import Capability, Role, RoleDirectory
from treasury_kernel.exceptions import InvalidDecisionError, UnauthorizedError
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.services.notification_service import NotificationService
from treasury_services.approval_chain_service import ApprovalChainService
from treasury_services.money_request_service import MoneyRequestService
from treasury_services.permission_resolver import PermissionResolver, SqlRoleDirectory
from treasury_services.status_projection import RequestStatusProjector
from treasury_services.template_service import ApprovalTemplateService

logger = get_logger("services.workflow")


@dataclass(frozen=True)
class _Unit:
    """Services bound to one transaction's session."""

    session: Session
    permissions: PermissionResolver
    templates: ApprovalTemplateService
    chain: ApprovalChainService
    requests: MoneyRequestService


class MoneyRequestWorkflow:
    """Transactional facade over the approval core.

    Args:
        grants: Role -> capability table (see ``from_config``).
        directory: Role directory; None reads ``user_roles`` and
            ``department_personnel`` through the call's own session.
        session_factory: Session factory; None uses the engine initialized
            by ``init_engine_from_url``.
        clock: Time source for every timestamp.
    """

    def __init__(
        self,
        grants: Mapping[Role, frozenset[Capability]],
        *,
        directory: RoleDirectory | None = None,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ):
        self._grants = dict(grants)
        self._directory = directory
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    @classmethod
    def from_config(
        cls,
        config: TreasuryConfigurationSet,
        **kwargs: Any,
    ) -> MoneyRequestWorkflow:
        return cls(build_capability_grants(config), **kwargs)

    @contextmanager
    def _unit(
        self,
        operation: str,
        *,
        actor_id: UUID | None = None,
        request_id: UUID | None = None,
        template_id: UUID | None = None,
    ) -> Iterator[_Unit]:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            request_id=str(request_id) if request_id else None,
            template_id=str(template_id) if template_id else None,
        ):
            logger.debug("workflow_operation_started", extra={"operation": operation})
            with session_scope(self._session_factory) as session:
                directory = self._directory or SqlRoleDirectory(session)
                permissions = PermissionResolver(directory, self._grants)
                projector = RequestStatusProjector(
                    session, self._clock, NotificationService(session, self._clock),
                )
                templates = ApprovalTemplateService(session, self._clock)
                chain = ApprovalChainService(session, permissions, self._clock, projector)
                requests = MoneyRequestService(
                    session, permissions, self._clock, templates=templates, chain=chain,
                )
                yield _Unit(session, permissions, templates, chain, requests)

    def _require(self, unit: _Unit, actor_id: UUID, capability: Capability, action: str) -> None:
        if not unit.permissions.has_capability(actor_id, capability):
            raise UnauthorizedError(str(actor_id), action, f"requires {capability.value}")

    # ------------------------------------------------------------------
    # Request operations
    # ------------------------------------------------------------------

    def resolve_template(self, department_id: UUID, amount: Decimal) -> ApprovalTemplate:
        with self._unit("resolve_template") as unit:
            return unit.templates.resolve_template(department_id, amount)

    def create_request(
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
        submit: bool = False,
    ) -> MoneyRequest:
        """Create a draft; with ``submit=True`` also submit it atomically."""
        with self._unit("create_request", actor_id=requester_id) as unit:
            request = unit.requests.create_draft(
                requester_id,
                department_id,
                fund_id,
                amount,
                purpose,
                description=description,
                suggested_vendor=suggested_vendor,
                associated_project=associated_project,
            )
            if submit:
                request = unit.requests.submit(request.request_id, requester_id)
            return request

    def update_request(self, request_id: UUID, actor_id: UUID, **changes: Any) -> MoneyRequest:
        with self._unit("update_request", actor_id=actor_id, request_id=request_id) as unit:
            return unit.requests.update_draft(request_id, actor_id, **changes)

    def withdraw_request(self, request_id: UUID, actor_id: UUID) -> None:
        with self._unit("withdraw_request", actor_id=actor_id, request_id=request_id) as unit:
            unit.requests.withdraw(request_id, actor_id)

    def submit_request(self, request_id: UUID, actor_id: UUID | None = None) -> MoneyRequest:
        with self._unit("submit_request", actor_id=actor_id, request_id=request_id) as unit:
            return unit.requests.submit(request_id, actor_id)

    def get_request(self, request_id: UUID, viewer_id: UUID | None = None) -> MoneyRequest:
        with self._unit("get_request", actor_id=viewer_id, request_id=request_id) as unit:
            return unit.requests.get_request(request_id, viewer_id)

    def list_requests(
        self,
        viewer_id: UUID,
        status: str | None = None,
        department_id: UUID | None = None,
    ) -> list[MoneyRequest]:
        with self._unit("list_requests", actor_id=viewer_id) as unit:
            return unit.requests.list_requests(viewer_id, status, department_id)

    def get_pending_approvals(self, user_id: UUID) -> list[PendingApproval]:
        with self._unit("get_pending_approvals", actor_id=user_id) as unit:
            return unit.requests.get_pending_approvals_for(user_id)

    def advance_chain(
        self,
        request_id: UUID,
        approver_id: UUID,
        decision: ApprovalDecision | str,
        comments: str | None = None,
        expected_approval_id: UUID | None = None,
    ) -> AdvanceResult:
        try:
            parsed = ApprovalDecision(decision)
        except ValueError as exc:
            raise InvalidDecisionError(str(request_id), str(decision)) from exc
        with self._unit("advance_chain", actor_id=approver_id, request_id=request_id) as unit:
            return unit.chain.advance(
                request_id,
                approver_id,
                parsed,
                comments,
                expected_approval_id=expected_approval_id,
            )

    def get_request_approvals(self, request_id: UUID) -> tuple[RequestApproval, ...]:
        with self._unit("get_request_approvals", request_id=request_id) as unit:
            return unit.requests.get_request_approvals(request_id)

    def get_status_history(
        self, request_id: UUID,
    ) -> list[tuple[str | None, str, UUID | None, str | None]]:
        with self._unit("get_status_history", request_id=request_id) as unit:
            return unit.requests.get_status_history(request_id)

    def mark_paid(self, request_id: UUID, actor_id: UUID) -> MoneyRequest:
        with self._unit("mark_paid", actor_id=actor_id, request_id=request_id) as unit:
            return unit.requests.mark_paid(request_id, actor_id)

    # ------------------------------------------------------------------
    # Template administration
    # ------------------------------------------------------------------

    def create_template(
        self,
        actor_id: UUID,
        name: str,
        steps: Sequence[ApprovalStepDefinition],
        **options: Any,
    ) -> ApprovalTemplate:
        with self._unit("create_template", actor_id=actor_id) as unit:
            self._require(unit, actor_id, Capability.MANAGE_APPROVAL_TEMPLATES, "create_template")
            return unit.templates.create_template(name, steps, created_by=actor_id, **options)

    def update_template(
        self, actor_id: UUID, template_id: UUID, **changes: Any,
    ) -> ApprovalTemplate:
        with self._unit("update_template", actor_id=actor_id, template_id=template_id) as unit:
            self._require(unit, actor_id, Capability.MANAGE_APPROVAL_TEMPLATES, "update_template")
            return unit.templates.update_template(template_id, **changes)

    def deactivate_template(self, actor_id: UUID, template_id: UUID) -> ApprovalTemplate:
        with self._unit("deactivate_template", actor_id=actor_id, template_id=template_id) as unit:
            self._require(
                unit, actor_id, Capability.MANAGE_APPROVAL_TEMPLATES, "deactivate_template",
            )
            return unit.templates.deactivate_template(template_id)

    def set_default_template(self, actor_id: UUID, template_id: UUID) -> ApprovalTemplate:
        with self._unit("set_default_template", actor_id=actor_id, template_id=template_id) as unit:
            self._require(
                unit, actor_id, Capability.MANAGE_APPROVAL_TEMPLATES, "set_default_template",
            )
            return unit.templates.set_default(template_id)

    def list_active_templates(self) -> list[ApprovalTemplate]:
        with self._unit("list_active_templates") as unit:
            return unit.templates.list_active_templates()
