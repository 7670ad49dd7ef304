"""
Treasury configuration schema.

The human-authored, reviewable source artifact for approval workflow
configuration.  YAML files are parsed into these types by the loader and
translated into kernel inputs by ``treasury_config.bridges``.

Amounts stay strings until the bridge converts them to ``Decimal`` so
that YAML floats never touch money.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Approval templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalStepDef:
    """One step of a configured template."""

    role: str
    step_order: int
    required: bool = True
    timeout_hours: int = 72


@dataclass(frozen=True)
class ApprovalTemplateDef:
    """A configured template.

    ``department`` is a department *name*; the seed script resolves it to
    an id.  None means the template applies to every department.
    """

    name: str
    steps: tuple[ApprovalStepDef, ...]
    department: str | None = None
    min_amount: str | None = None
    max_amount: str | None = None
    is_default: bool = False
    description: str | None = None


# ---------------------------------------------------------------------------
# Access policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapabilityGrantDef:
    """Capabilities conferred on one church-wide role."""

    role: str
    capabilities: tuple[str, ...]


@dataclass(frozen=True)
class AccessPolicyDef:
    grants: tuple[CapabilityGrantDef, ...] = ()


# ---------------------------------------------------------------------------
# Top-level set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TreasuryConfigurationSet:
    """Everything loaded from one configuration directory."""

    config_id: str
    version: int
    templates: tuple[ApprovalTemplateDef, ...] = ()
    access: AccessPolicyDef = field(default_factory=AccessPolicyDef)
    checksum: str = ""
