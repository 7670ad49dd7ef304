"""
treasury_engines.approval -- Pure approval chain engine.

Responsibility:
    Template validation and resolution, current-step derivation, status
    derivation from chain state, and decision validation.  These are the
    state-machine rules of the approval chain, kept out of the database
    so they can be tested without one.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import treasury_kernel/domain/ types and treasury_kernel
    exceptions.

Invariants enforced:
    - Sequential exclusivity: ``current_step`` is always the pending step
      with the lowest order_sequence, and there is none once any step has
      been rejected.
    - Status is a pure function of (phase, steps); see ``derive_status``.
    - Template resolution is deterministic: the most specific active
      match wins; equal specificity is broken only by ``is_default``,
      otherwise it is an error.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - NoTemplateConfiguredError: nothing matched and no default exists.
    - AmbiguousTemplateMatchError: two non-default templates tie.
    - InvalidTemplateError: malformed step list or amount bounds.
    - ReasonRequiredError: rejection with blank comments.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from treasury_engines.tracer import traced_engine
from treasury_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalStepDefinition,
    ApprovalTemplate,
    RequestApproval,
    StepStatus,
)
from treasury_kernel.domain.money_request import (
    Approved,
    AwaitingApproval,
    Draft,
    Paid,
    Rejected,
    RequestPhase,
    RequestStatus,
    Submitted,
)
from treasury_kernel.exceptions import (
    AmbiguousTemplateMatchError,
    InvalidTemplateError,
    NoTemplateConfiguredError,
    ReasonRequiredError,
)

# =========================================================================
# Template validation
# =========================================================================


def validate_template_definition(
    name: str,
    steps: Sequence[ApprovalStepDefinition],
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> None:
    """Raise InvalidTemplateError unless the template is well formed.

    Checks: non-empty name, at least one step, step orders positive,
    unique and contiguous, positive timeouts, non-negative ordered
    amount bounds.
    """
    if not name or not name.strip():
        raise InvalidTemplateError(name, "Template name must not be empty")
    if not steps:
        raise InvalidTemplateError(name, "Template must define at least one step")

    orders = sorted(s.step_order for s in steps)
    if len(set(orders)) != len(orders):
        raise InvalidTemplateError(name, f"Duplicate step_order values: {orders}")
    if orders[0] < 1:
        raise InvalidTemplateError(name, "step_order values must be positive")
    if orders != list(range(orders[0], orders[0] + len(orders))):
        raise InvalidTemplateError(name, f"step_order values must be contiguous: {orders}")

    for step in steps:
        if step.timeout_hours <= 0:
            raise InvalidTemplateError(
                name,
                f"Step {step.step_order} ({step.role.value}) has non-positive "
                f"timeout_hours {step.timeout_hours}",
            )

    if min_amount is not None and min_amount < 0:
        raise InvalidTemplateError(name, "min_amount must not be negative")
    if max_amount is not None and max_amount < 0:
        raise InvalidTemplateError(name, "max_amount must not be negative")
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise InvalidTemplateError(
            name, f"min_amount {min_amount} exceeds max_amount {max_amount}",
        )


# =========================================================================
# Template resolution
# =========================================================================


def template_matches(
    template: ApprovalTemplate,
    department_id: UUID,
    amount: Decimal,
) -> bool:
    """True if an active template's scope covers department and amount.

    Both amount bounds are inclusive; None is unbounded.
    """
    if not template.is_active:
        return False
    if template.department_id is not None and template.department_id != department_id:
        return False
    if template.min_amount is not None and amount < template.min_amount:
        return False
    if template.max_amount is not None and amount > template.max_amount:
        return False
    return True


def specificity_key(template: ApprovalTemplate) -> tuple:
    """Sort key where a larger value means a more specific template.

    Department scope dominates, then the highest min bound, then the
    tightest max bound.
    """
    has_min = template.min_amount is not None
    has_max = template.max_amount is not None
    return (
        template.department_id is not None,
        has_min,
        template.min_amount if has_min else Decimal("0"),
        has_max,
        -template.max_amount if has_max else Decimal("0"),
    )


@traced_engine(
    "template_resolver", "1.0",
    fingerprint_fields=("department_id", "amount"),
    describe=lambda t: {"template_id": t.template_id, "template_name": t.name},
)
def select_template(
    templates: Iterable[ApprovalTemplate],
    *,
    department_id: UUID,
    amount: Decimal,
) -> ApprovalTemplate:
    """Pick the template governing a request for ``department_id``/``amount``.

    Args:
        templates: Candidate templates; inactive ones are ignored.
        department_id: The requesting department.
        amount: The requested amount.

    Returns:
        The most specific matching template, or the default template when
        nothing matches.

    Raises:
        NoTemplateConfiguredError: nothing matched and no active default.
        AmbiguousTemplateMatchError: several templates share the best
            specificity and exactly one of them is not the default.
    """
    pool = [t for t in templates if t.is_active]
    candidates = [t for t in pool if template_matches(t, department_id, amount)]

    if not candidates:
        defaults = [t for t in pool if t.is_default]
        if not defaults:
            raise NoTemplateConfiguredError(str(department_id), str(amount))
        return defaults[0]

    best = max(specificity_key(t) for t in candidates)
    top = [t for t in candidates if specificity_key(t) == best]
    if len(top) == 1:
        return top[0]

    defaults = [t for t in top if t.is_default]
    if len(defaults) == 1:
        return defaults[0]

    raise AmbiguousTemplateMatchError(
        str(department_id),
        str(amount),
        sorted(str(t.template_id) for t in top),
    )


# =========================================================================
# Chain state
# =========================================================================


def plan_chain(template: ApprovalTemplate) -> tuple[ApprovalStepDefinition, ...]:
    """Step definitions in the order they are materialized."""
    return template.ordered_steps


def is_rejected(steps: Iterable[RequestApproval]) -> bool:
    return any(s.status == StepStatus.REJECTED for s in steps)


def current_step(steps: Iterable[RequestApproval]) -> RequestApproval | None:
    """The lowest-ordered pending step, or None.

    None when no chain exists, when every step is decided, or when any
    step has been rejected (rejection terminates the chain; the pending
    steps behind it are moot).
    """
    steps = tuple(steps)
    if is_rejected(steps):
        return None
    pending = [s for s in steps if s.status == StepStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda s: s.order_sequence)


def next_step_after(
    steps: Iterable[RequestApproval],
    order_sequence: int,
) -> RequestApproval | None:
    """The pending step that becomes current once ``order_sequence`` is approved."""
    steps = tuple(steps)
    if is_rejected(steps):
        return None
    later = [
        s for s in steps
        if s.status == StepStatus.PENDING and s.order_sequence > order_sequence
    ]
    if not later:
        return None
    return min(later, key=lambda s: s.order_sequence)


def chain_is_complete(steps: Iterable[RequestApproval]) -> bool:
    """True when the chain exists and every step is approved."""
    steps = tuple(steps)
    return bool(steps) and all(s.status == StepStatus.APPROVED for s in steps)


def derive_status(
    phase: RequestPhase,
    steps: Iterable[RequestApproval],
) -> RequestStatus:
    """Status variant as a pure function of lifecycle phase and chain.

    * draft phase -> Draft
    * paid phase -> Paid
    * submitted, no chain -> Submitted
    * submitted, a step rejected -> Rejected(reason from that step)
    * submitted, a pending current step -> AwaitingApproval(its level)
    * submitted, all steps approved -> Approved
    """
    if phase == RequestPhase.DRAFT:
        return Draft()
    if phase == RequestPhase.PAID:
        return Paid()

    steps = tuple(steps)
    if not steps:
        return Submitted()

    rejected = [s for s in steps if s.status == StepStatus.REJECTED]
    if rejected:
        first = min(rejected, key=lambda s: s.order_sequence)
        return Rejected(reason=first.comments or "")

    step = current_step(steps)
    if step is not None:
        return AwaitingApproval(level=step.approval_level)
    return Approved()


# =========================================================================
# Decisions
# =========================================================================


def validate_decision(
    request_id: UUID,
    decision: ApprovalDecision,
    comments: str | None,
) -> str | None:
    """Normalize comments for a decision.

    Returns the stripped comment, or None if blank.

    Raises:
        ReasonRequiredError: rejection with missing or whitespace-only
            comments.
    """
    cleaned = comments.strip() if comments else ""
    if decision == ApprovalDecision.REJECTED and not cleaned:
        raise ReasonRequiredError(str(request_id))
    return cleaned or None
