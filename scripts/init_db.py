#!/usr/bin/env python3
"""
Create the schema and run startup migrations.

Creates any missing tables, makes sure the settings row exists, and
converts a legacy single owner into the owners registry.  Safe to run on
every deploy.

Usage:
    python3 scripts/init_db.py
    DATABASE_URL=sqlite:///colony.db python3 scripts/init_db.py
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    from colony_config import get_active_config
    from colony_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from colony_kernel.logging_config import configure_logging
    from colony_kernel.services.settings_service import SettingsService

    config = get_active_config()
    configure_logging(level=config.log_level)

    print("  [1/2] Creating tables...")
    try:
        init_engine_from_url(config.database_url, pool_size=config.pool_size, max_overflow=config.max_overflow)
        create_tables()
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/2] Migrating settings...")
    with session_scope() as session:
        migrated = SettingsService(session).migrate_legacy_owner()
    print("  Legacy owner migrated." if migrated else "  No legacy owner data.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
