"""
Configuration Loader (``treasury_config.loader``).

Responsibility
--------------
Loads the YAML files of a configuration directory and parses them into
typed ``treasury_config.schema`` dataclasses.  Runtime callers go
through ``treasury_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  documents for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from treasury_config.schema import (
    AccessPolicyDef,
    ApprovalStepDef,
    ApprovalTemplateDef,
    CapabilityGrantDef,
    TreasuryConfigurationSet,
)

TEMPLATES_FILE = "approval_templates.yaml"
ACCESS_FILE = "access.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _amount(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        raise ValueError(
            f"Amount {value!r} must be quoted in YAML to avoid float rounding"
        )
    return str(value)


def parse_step(data: dict[str, Any]) -> ApprovalStepDef:
    return ApprovalStepDef(
        role=data["role"],
        step_order=int(data["step_order"]),
        required=bool(data.get("required", True)),
        timeout_hours=int(data.get("timeout_hours", 72)),
    )


def parse_template(data: dict[str, Any]) -> ApprovalTemplateDef:
    """Parse one entry of the ``templates`` list."""
    steps = data.get("steps") or []
    if not steps:
        raise ValueError(f"Template {data.get('name')!r} has no steps")
    return ApprovalTemplateDef(
        name=data["name"],
        steps=tuple(parse_step(s) for s in steps),
        department=data.get("department"),
        min_amount=_amount(data.get("min_amount")),
        max_amount=_amount(data.get("max_amount")),
        is_default=bool(data.get("is_default", False)),
        description=data.get("description"),
    )


def parse_access(data: dict[str, Any]) -> AccessPolicyDef:
    grants = data.get("grants") or {}
    return AccessPolicyDef(
        grants=tuple(
            CapabilityGrantDef(role=role, capabilities=tuple(caps or ()))
            for role, caps in sorted(grants.items())
        )
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of canonical JSON; identical data gives identical checksums."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration_set(config_dir: Path) -> TreasuryConfigurationSet:
    """Load ``approval_templates.yaml`` and ``access.yaml`` from a directory.

    Raises:
        FileNotFoundError: a required file is missing.
        ValueError: a template has more than one ``is_default`` or no steps.
    """
    templates_doc = load_yaml_file(config_dir / TEMPLATES_FILE)
    access_doc = load_yaml_file(config_dir / ACCESS_FILE)

    templates = tuple(parse_template(t) for t in templates_doc.get("templates") or [])
    defaults = [t.name for t in templates if t.is_default]
    if len(defaults) > 1:
        raise ValueError(f"More than one default template configured: {defaults}")

    return TreasuryConfigurationSet(
        config_id=templates_doc["config_id"],
        version=int(templates_doc.get("version", 1)),
        templates=templates,
        access=parse_access(access_doc),
        checksum=compute_checksum({"templates": templates_doc, "access": access_doc}),
    )
