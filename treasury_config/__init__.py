"""
treasury_config -- approval workflow configuration.

Responsibility:
    ``get_active_config()`` is the runtime entry point for configuration:
    default approval templates and role -> capability grants.  Environment
    settings come from ``TreasurySettings.from_env()``.

Architecture position:
    Configuration -- sits above ``treasury_kernel`` and below
    ``treasury_services``.  The kernel MUST NEVER import treasury_config;
    ``bridges`` translates loaded artifacts into kernel types.

Audit relevance:
    Every ``get_active_config()`` call emits a ``TREASURY_CONFIG_TRACE``
    log entry with the config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from treasury_config.loader import compute_checksum, load_configuration_set
from treasury_config.schema import TreasuryConfigurationSet
from treasury_config.settings import DEFAULT_CONFIG_DIR, TreasurySettings

_logger = logging.getLogger("treasury_kernel.config")


def get_active_config(config_dir: Path | None = None) -> TreasuryConfigurationSet:
    """Load the configuration set from ``config_dir`` or the packaged defaults."""
    directory = config_dir or DEFAULT_CONFIG_DIR
    config = load_configuration_set(directory)
    _logger.info(
        "TREASURY_CONFIG_TRACE",
        extra={
            "trace_type": "TREASURY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "template_count": len(config.templates),
            "grant_count": len(config.access.grants),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_DIR",
    "TreasuryConfigurationSet",
    "TreasurySettings",
    "compute_checksum",
    "get_active_config",
    "load_configuration_set",
]
