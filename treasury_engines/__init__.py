"""
Module: treasury_engines
Responsibility:
    Package entrypoint re-exporting the pure approval-chain engine.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import treasury_kernel.domain and treasury_kernel.exceptions.
    MUST NOT import treasury_services.

Invariants enforced:
    - Purity: engines never read the clock.  Decision timestamps are
      supplied by the calling service from its injected Clock.
    - Decimal-only arithmetic for amounts.
    - Determinism: identical inputs always produce identical outputs.
"""

from treasury_engines.approval import (
    chain_is_complete,
    current_step,
    derive_status,
    is_rejected,
    next_step_after,
    plan_chain,
    select_template,
    specificity_key,
    template_matches,
    validate_decision,
    validate_template_definition,
)
from treasury_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "chain_is_complete",
    "current_step",
    "derive_status",
    "is_rejected",
    "next_step_after",
    "plan_chain",
    "select_template",
    "specificity_key",
    "template_matches",
    "validate_decision",
    "validate_template_definition",
    "compute_input_fingerprint",
    "traced_engine",
]
