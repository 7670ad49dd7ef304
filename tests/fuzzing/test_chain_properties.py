"""
Hypothesis properties of the pure chain engine.

Chains are driven by replaying generated decision sequences through
current_step / derive_status, the same functions ApprovalChainService
uses after every write.

Properties:
- Only the lowest pending step is ever current
- A rejection ends the chain and fixes the status at rejected
- Approved iff every step is approved
- Template selection returns a match of maximal specificity
- Amount bounds are inclusive
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from treasury_engines.approval import (
    chain_is_complete,
    current_step,
    derive_status,
    select_template,
    specificity_key,
    template_matches,
)
from treasury_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalLevel,
    ApprovalStepDefinition,
    ApprovalTemplate,
    RequestApproval,
    StepStatus,
)
from treasury_kernel.domain.money_request import (
    Approved,
    AwaitingApproval,
    Rejected,
    RequestPhase,
)
from treasury_kernel.exceptions import AmbiguousTemplateMatchError

FUZZ_SETTINGS = settings(
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

DEPARTMENTS = [uuid4() for _ in range(3)]

levels_strategy = st.lists(st.sampled_from(list(ApprovalLevel)), min_size=1, max_size=6)
decisions_strategy = st.lists(st.sampled_from(list(ApprovalDecision)), max_size=8)
amount_strategy = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2,
    allow_nan=False, allow_infinity=False,
)


def build_chain(levels) -> tuple[RequestApproval, ...]:
    request_id = uuid4()
    return tuple(
        RequestApproval(
            approval_id=uuid4(),
            request_id=request_id,
            approval_level=level,
            order_sequence=i,
            status=StepStatus.PENDING,
        )
        for i, level in enumerate(levels, start=1)
    )


def decide(steps, decision: ApprovalDecision):
    """Apply ``decision`` to the current step; None when nothing is current."""
    step = current_step(steps)
    if step is None:
        return None
    decided = replace(
        step,
        status=decision.step_status,
        comments="no" if decision == ApprovalDecision.REJECTED else None,
    )
    return tuple(decided if s.approval_id == step.approval_id else s for s in steps)


@st.composite
def templates_strategy(draw):
    count = draw(st.integers(min_value=1, max_value=5))
    templates = []
    for i in range(count):
        low = draw(st.one_of(st.none(), amount_strategy))
        high = draw(st.one_of(st.none(), amount_strategy))
        if low is not None and high is not None and high < low:
            low, high = high, low
        templates.append(
            ApprovalTemplate(
                template_id=uuid4(),
                name=f"t{i}",
                steps=(ApprovalStepDefinition(ApprovalLevel.DEPARTMENT_TREASURER, 1),),
                department_id=draw(st.one_of(st.none(), st.sampled_from(DEPARTMENTS))),
                min_amount=low,
                max_amount=high,
                is_default=(i == 0 and draw(st.booleans())),
            )
        )
    return templates


class TestChainProgression:

    @given(levels=levels_strategy, decisions=decisions_strategy)
    @FUZZ_SETTINGS
    def test_only_lowest_pending_step_is_current(self, levels, decisions):
        steps = build_chain(levels)
        for decision in decisions:
            step = current_step(steps)
            if step is not None:
                pending = [s.order_sequence for s in steps if s.status == StepStatus.PENDING]
                assert step.order_sequence == min(pending)
                decided = [s for s in steps if s.order_sequence < step.order_sequence]
                assert all(s.status == StepStatus.APPROVED for s in decided)
            nxt = decide(steps, decision)
            if nxt is None:
                break
            steps = nxt

    @given(levels=levels_strategy, decisions=decisions_strategy)
    @FUZZ_SETTINGS
    def test_rejection_is_terminal(self, levels, decisions):
        steps = build_chain(levels)
        rejected = False
        for decision in decisions:
            nxt = decide(steps, decision)
            if rejected:
                assert nxt is None
            if nxt is None:
                break
            steps = nxt
            rejected = rejected or decision == ApprovalDecision.REJECTED

        status = derive_status(RequestPhase.SUBMITTED, steps)
        if rejected:
            assert isinstance(status, Rejected)
            assert status.label == "rejected"
            assert current_step(steps) is None
        else:
            assert not isinstance(status, Rejected)

    @given(levels=levels_strategy)
    @FUZZ_SETTINGS
    def test_approve_all_terminates(self, levels):
        steps = build_chain(levels)
        seen = []
        while (step := current_step(steps)) is not None:
            assert isinstance(derive_status(RequestPhase.SUBMITTED, steps), AwaitingApproval)
            assert not chain_is_complete(steps)
            seen.append(step.order_sequence)
            steps = decide(steps, ApprovalDecision.APPROVED)

        assert seen == list(range(1, len(levels) + 1))
        assert chain_is_complete(steps)
        assert isinstance(derive_status(RequestPhase.SUBMITTED, steps), Approved)

    @given(levels=levels_strategy, decisions=decisions_strategy)
    @FUZZ_SETTINGS
    def test_approved_iff_every_step_approved(self, levels, decisions):
        steps = build_chain(levels)
        for decision in decisions:
            nxt = decide(steps, decision)
            if nxt is None:
                break
            steps = nxt

        all_approved = all(s.status == StepStatus.APPROVED for s in steps)
        assert isinstance(derive_status(RequestPhase.SUBMITTED, steps), Approved) == all_approved


class TestTemplateSelection:

    @given(
        templates=templates_strategy(),
        department_id=st.sampled_from(DEPARTMENTS),
        amount=amount_strategy,
    )
    @FUZZ_SETTINGS
    def test_selects_most_specific_match(self, templates, department_id, amount):
        matching = [t for t in templates if template_matches(t, department_id, amount)]
        assume(matching or any(t.is_default for t in templates))

        try:
            chosen = select_template(templates, department_id=department_id, amount=amount)
        except AmbiguousTemplateMatchError:
            best = max(specificity_key(t) for t in matching)
            assert sum(specificity_key(t) == best for t in matching) > 1
            return

        if matching:
            assert chosen in matching
            assert specificity_key(chosen) == max(specificity_key(t) for t in matching)
        else:
            assert chosen.is_default

    @given(
        bound=amount_strategy,
        department_id=st.sampled_from(DEPARTMENTS),
    )
    @FUZZ_SETTINGS
    def test_bounds_are_inclusive(self, bound, department_id):
        template = ApprovalTemplate(
            template_id=uuid4(),
            name="exact",
            steps=(ApprovalStepDefinition(ApprovalLevel.PASTOR, 1),),
            min_amount=bound,
            max_amount=bound,
        )

        assert template_matches(template, department_id, bound)
        assert not template_matches(template, department_id, bound + Decimal("0.01"))
        assert not template_matches(template, department_id, bound - Decimal("0.01"))

    @given(amount=st.decimals(
        min_value=Decimal("1000"), max_value=Decimal("1000000"), places=2,
        allow_nan=False, allow_infinity=False,
    ))
    @FUZZ_SETTINGS
    def test_department_template_beats_default(self, amount):
        department_id = DEPARTMENTS[0]
        fallback = ApprovalTemplate(
            template_id=uuid4(), name="T1",
            steps=(ApprovalStepDefinition(ApprovalLevel.DEPARTMENT_TREASURER, 1),),
            min_amount=Decimal("0"), is_default=True,
        )
        scoped = ApprovalTemplate(
            template_id=uuid4(), name="T2",
            steps=(ApprovalStepDefinition(ApprovalLevel.HEAD_OF_DEPARTMENT, 1),),
            department_id=department_id, min_amount=Decimal("1000"),
        )

        chosen = select_template([fallback, scoped], department_id=department_id, amount=amount)

        assert chosen is scoped
