"""
Concurrent decisions on one approval step.

Several threads decide the same step through MoneyRequestWorkflow, each in
its own transaction.  Exactly one decision may land; the others must fail
with StepAlreadyDecidedError and leave the chain untouched.

Requires PostgreSQL (SQLite serializes writers, so there is no race to
observe).  Set TREASURY_DATABASE_URL to a postgresql+psycopg:// URL.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from tests.conftest import make_steps
from treasury_kernel.db.engine import create_tables, drop_tables, init_engine_from_url, reset_engine
from treasury_kernel.domain.approval import ApprovalLevel, StepStatus
from treasury_kernel.exceptions import NoPendingStepError, StepAlreadyDecidedError
from treasury_services.money_request_workflow import MoneyRequestWorkflow

pytestmark = pytest.mark.postgres

THREADS = 8
DATABASE_URL = os.environ.get("TREASURY_DATABASE_URL", "")


@pytest.fixture
def db_engine():
    """PostgreSQL engine with fresh tables; overrides the SQLite default."""
    if not DATABASE_URL.startswith("postgresql"):
        pytest.skip("TREASURY_DATABASE_URL does not point at PostgreSQL")
    eng = init_engine_from_url(DATABASE_URL, pool_size=THREADS)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def workflow(grants, role_directory, session_factory):
    return MoneyRequestWorkflow(grants, directory=role_directory, session_factory=session_factory)


@pytest.fixture
def pending_request(workflow, actors, department_id, fund_id):
    workflow.create_template(
        actors.admin,
        "Race",
        make_steps(ApprovalLevel.DEPARTMENT_TREASURER, ApprovalLevel.HEAD_OF_DEPARTMENT),
        is_default=True,
    )
    return workflow.create_request(
        actors.requester, department_id, fund_id, Decimal("75.00"), "Sound desk cable",
        submit=True,
    )


def test_exactly_one_decision_lands(workflow, pending_request, actors):
    request_id = pending_request.request_id
    step = workflow.get_request_approvals(request_id)[0]
    barrier = Barrier(THREADS)

    def decide(_):
        barrier.wait()
        try:
            workflow.advance_chain(
                request_id, actors.admin, "approved", expected_approval_id=step.approval_id,
            )
            return "ok"
        except StepAlreadyDecidedError:
            return "already_decided"

    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        outcomes = list(pool.map(decide, range(THREADS)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_decided") == THREADS - 1

    approvals = workflow.get_request_approvals(request_id)
    assert [a.status for a in approvals] == [StepStatus.APPROVED, StepStatus.PENDING]
    assert workflow.get_request(request_id).status_label == "pending_head_of_department"
    history = workflow.get_status_history(request_id)
    assert [new for _, new, _, _ in history].count("pending_head_of_department") == 1


def test_approve_and_reject_race(workflow, pending_request, actors):
    """A treasurer approving and an administrator rejecting at the same moment.

    If the rejection lands first the chain is over, so the late approval
    sees no pending step at all.
    """
    request_id = pending_request.request_id
    step = workflow.get_request_approvals(request_id)[0]
    barrier = Barrier(2)

    def decide(args):
        approver, decision, comments = args
        barrier.wait()
        try:
            workflow.advance_chain(
                request_id, approver, decision, comments, expected_approval_id=step.approval_id,
            )
            return decision
        except (StepAlreadyDecidedError, NoPendingStepError):
            return None

    attempts = [
        (actors.treasurer, "approved", None),
        (actors.admin, "rejected", "duplicate of last week's request"),
    ]
    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(decide, attempts))

    winners = [o for o in outcomes if o is not None]
    assert len(winners) == 1
    expected = "pending_head_of_department" if winners[0] == "approved" else "rejected"
    assert workflow.get_request(request_id).status_label == expected
