#!/usr/bin/env python3
"""
Seed the approval templates from a configuration directory.

Usage:
    python scripts/seed_templates.py [--config-dir DIR] [--database-url URL]
                                     [--create-tables] [--created-by UUID]

Defaults come from the environment (TREASURY_DATABASE_URL,
TREASURY_CONFIG_DIR); without them the packaged defaults are loaded into
an in-memory SQLite database, which is only useful as a dry run.

Templates whose name already exists are left untouched, so the script
can be re-run after editing the YAML.
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from treasury_config import TreasurySettings, get_active_config
from treasury_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from treasury_kernel.exceptions import TreasuryError
from treasury_kernel.logging_config import configure_logging
from treasury_services.template_seeding import seed_templates


def parse_args(argv=None):
    settings = TreasurySettings.from_env()
    parser = argparse.ArgumentParser(description="Seed approval templates from YAML.")
    parser.add_argument("--config-dir", type=Path, default=settings.config_dir)
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument(
        "--create-tables", action="store_true",
        help="Create missing tables before seeding.",
    )
    parser.add_argument("--created-by", type=UUID, default=None)
    parser.add_argument("--log-level", default=settings.log_level)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level=args.log_level)

    if not args.config_dir.is_dir():
        print(f"Error: directory not found: {args.config_dir}", file=sys.stderr)
        return 1

    config = get_active_config(args.config_dir)
    print(f"Loaded {config.config_id} v{config.version} ({config.checksum[:16]}...)")

    init_engine_from_url(args.database_url)
    if args.create_tables:
        create_tables()

    try:
        with session_scope() as session:
            created = seed_templates(session, config, created_by=args.created_by)
    except TreasuryError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    for template in created:
        marker = " (default)" if template.is_default else ""
        levels = " -> ".join(level.value for level in template.levels)
        print(f"  created {template.name}{marker}: {levels}")
    print(f"Done. {len(created)} template(s) created.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
