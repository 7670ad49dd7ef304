"""
Pytest fixtures for the treasury test suite.

Provides:
- A fresh in-memory SQLite database per test (tables created from the models)
- A deterministic clock, a static role directory and the default grants
- Service factories wired to the test session
- Structured log capture

Environment Variables:
- TREASURY_DATABASE_URL: only read by tests marked ``postgres``; they are
  skipped unless it points at PostgreSQL.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from treasury_config import get_active_config
from treasury_config.bridges import build_capability_grants
from treasury_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from treasury_kernel.domain.approval import ApprovalLevel, ApprovalStepDefinition
from treasury_kernel.domain.clock import DeterministicClock
from treasury_kernel.domain.roles import Role
from treasury_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from treasury_kernel.models.directory import DepartmentModel, ProfileModel
from treasury_kernel.services.notification_service import NotificationService
from treasury_services.approval_chain_service import ApprovalChainService
from treasury_services.money_request_service import MoneyRequestService
from treasury_services.permission_resolver import PermissionResolver, StaticRoleDirectory
from treasury_services.status_projection import RequestStatusProjector
from treasury_services.template_service import ApprovalTemplateService


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture treasury_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, chain_service):
            chain_service.advance(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_step_decided" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("treasury_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables, torn down after the test."""
    eng = init_engine_from_url("sqlite://")
    create_tables(eng)
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for flush-only services.  Nothing is committed."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# People, departments and permissions
# =============================================================================


@dataclass(frozen=True)
class Actors:
    """Test users.  Department-scoped roles are held in ``department_id``."""

    requester: UUID
    treasurer: UUID
    hod: UUID
    finance_elder: UUID
    general_secretary: UUID
    pastor: UUID
    admin: UUID
    finance_manager: UUID
    other_treasurer: UUID
    outsider: UUID


@pytest.fixture
def department_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_department_id() -> UUID:
    return uuid4()


@pytest.fixture
def fund_id() -> UUID:
    return uuid4()


@pytest.fixture
def actors() -> Actors:
    return Actors(**{name: uuid4() for name in Actors.__dataclass_fields__})


@pytest.fixture
def role_directory(actors, department_id, other_department_id) -> StaticRoleDirectory:
    directory = StaticRoleDirectory()
    directory.assign(actors.requester, Role.DEPARTMENT_MEMBER, department_id)
    directory.assign(actors.treasurer, Role.DEPARTMENT_TREASURER, department_id)
    directory.assign(actors.hod, Role.HEAD_OF_DEPARTMENT, department_id)
    directory.assign(actors.finance_elder, Role.FINANCE_ELDER)
    directory.assign(actors.general_secretary, Role.GENERAL_SECRETARY)
    directory.assign(actors.pastor, Role.PASTOR)
    directory.assign(actors.admin, Role.ADMINISTRATOR)
    directory.assign(actors.finance_manager, Role.FINANCE_MANAGER)
    directory.assign(actors.other_treasurer, Role.DEPARTMENT_TREASURER, other_department_id)
    return directory


@pytest.fixture(scope="session")
def grants():
    """Role -> capability table from the packaged access.yaml."""
    return build_capability_grants(get_active_config())


@pytest.fixture
def permissions(role_directory, grants) -> PermissionResolver:
    return PermissionResolver(role_directory, grants)


@pytest.fixture
def directory_rows(session, actors, department_id, other_department_id):
    """Department and profile rows used for inbox display names."""
    session.add_all([
        DepartmentModel(id=department_id, name="Youth Ministry"),
        DepartmentModel(id=other_department_id, name="Music"),
        ProfileModel(id=actors.requester, first_name="Ada", last_name="Okafor"),
    ])
    session.flush()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def notification_service(session, deterministic_clock) -> NotificationService:
    return NotificationService(session, deterministic_clock)


@pytest.fixture
def projector(session, deterministic_clock, notification_service) -> RequestStatusProjector:
    return RequestStatusProjector(session, deterministic_clock, notification_service)


@pytest.fixture
def template_service(session, deterministic_clock) -> ApprovalTemplateService:
    return ApprovalTemplateService(session, deterministic_clock)


@pytest.fixture
def chain_service(session, permissions, deterministic_clock, projector) -> ApprovalChainService:
    return ApprovalChainService(session, permissions, deterministic_clock, projector)


@pytest.fixture
def request_service(
    session, permissions, deterministic_clock, template_service, chain_service,
) -> MoneyRequestService:
    return MoneyRequestService(
        session,
        permissions,
        deterministic_clock,
        templates=template_service,
        chain=chain_service,
    )


# =============================================================================
# Factories
# =============================================================================


def make_steps(*levels: ApprovalLevel, timeout_hours: int = 48) -> tuple[ApprovalStepDefinition, ...]:
    """Step definitions numbered 1..n in the order given."""
    return tuple(
        ApprovalStepDefinition(role=level, step_order=i, timeout_hours=timeout_hours)
        for i, level in enumerate(levels, start=1)
    )


@pytest.fixture
def default_template(template_service):
    """Default template [department_treasurer, head_of_department], unbounded."""
    return template_service.create_template(
        "Standard request",
        make_steps(ApprovalLevel.DEPARTMENT_TREASURER, ApprovalLevel.HEAD_OF_DEPARTMENT),
        is_default=True,
    )


@pytest.fixture
def create_draft(request_service, actors, department_id, fund_id):
    """Factory fixture: create a draft money request with sensible defaults."""

    def _create(
        *,
        amount=Decimal("500.00"),
        purpose="Youth retreat deposit",
        requester_id=None,
        department=None,
        **fields,
    ):
        return request_service.create_draft(
            requester_id or actors.requester,
            department or department_id,
            fund_id,
            amount,
            purpose,
            **fields,
        )

    return _create


@pytest.fixture
def submitted_request(create_draft, request_service, default_template, actors):
    """A 500.00 request submitted under the default template."""
    draft = create_draft()
    return request_service.submit(draft.request_id, actors.requester)
