"""
Runtime settings read from the environment.

| Variable                | Default              |
|-------------------------|----------------------|
| TREASURY_DATABASE_URL   | ``sqlite://``        |
| TREASURY_DB_ECHO        | ``false``            |
| TREASURY_DB_POOL_SIZE   | ``20``               |
| TREASURY_LOG_LEVEL      | ``INFO``             |
| TREASURY_CONFIG_DIR     | packaged defaults    |
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_DIR = Path(__file__).parent / "defaults"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class TreasurySettings:
    database_url: str = "sqlite://"
    db_echo: bool = False
    db_pool_size: int = 20
    log_level: str = "INFO"
    config_dir: Path = DEFAULT_CONFIG_DIR

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TreasurySettings:
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises:
            ValueError: TREASURY_DB_POOL_SIZE is not a positive integer.
        """
        env = os.environ if environ is None else environ
        pool_size = int(env.get("TREASURY_DB_POOL_SIZE", "20"))
        if pool_size < 1:
            raise ValueError(f"TREASURY_DB_POOL_SIZE must be positive, got {pool_size}")
        config_dir = env.get("TREASURY_CONFIG_DIR")
        return cls(
            database_url=env.get("TREASURY_DATABASE_URL", "sqlite://"),
            db_echo=env.get("TREASURY_DB_ECHO", "false").strip().lower() in _TRUE_VALUES,
            db_pool_size=pool_size,
            log_level=env.get("TREASURY_LOG_LEVEL", "INFO").upper(),
            config_dir=Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR,
        )
