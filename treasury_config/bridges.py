"""
Config -> Kernel Bridges.

Convert loaded configuration into kernel-compatible inputs.  These live
in treasury_config (the producer) because the kernel never imports
treasury_config.

Usage:
    from treasury_config.bridges import build_capability_grants

    config = get_active_config()
    resolver = PermissionResolver(directory, build_capability_grants(config))
"""

from __future__ import annotations

from decimal import Decimal

from treasury_config.schema import ApprovalTemplateDef, TreasuryConfigurationSet
from treasury_kernel.domain.approval import ApprovalLevel, ApprovalStepDefinition
from treasury_kernel.domain.roles import Capability, Role


def build_capability_grants(
    config: TreasuryConfigurationSet,
) -> dict[Role, frozenset[Capability]]:
    """Role -> capability table for ``PermissionResolver``.

    Raises:
        ValueError: an unknown role or capability name is configured.
    """
    grants: dict[Role, frozenset[Capability]] = {}
    for grant in config.access.grants:
        grants[Role(grant.role)] = frozenset(Capability(c) for c in grant.capabilities)
    return grants


def build_step_definitions(
    template: ApprovalTemplateDef,
) -> tuple[ApprovalStepDefinition, ...]:
    """Typed step definitions; raises ValueError on an unknown role."""
    return tuple(
        ApprovalStepDefinition(
            role=ApprovalLevel(step.role),
            step_order=step.step_order,
            required=step.required,
            timeout_hours=step.timeout_hours,
        )
        for step in template.steps
    )


def template_bounds(template: ApprovalTemplateDef) -> tuple[Decimal | None, Decimal | None]:
    """(min_amount, max_amount) as Decimals."""
    low = Decimal(template.min_amount) if template.min_amount is not None else None
    high = Decimal(template.max_amount) if template.max_amount is not None else None
    return low, high
