#!/usr/bin/env python3
"""
Assign user codes to users created before codes existed.

Codes follow the role prefix map in configuration (Agent -> AG-00001,
Lawyer -> ADV-00001, unmapped roles -> EMP-00001), oldest users first.

Usage:
    python3 scripts/generate_user_codes.py --actor-id <uuid>
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("--actor-id", type=UUID, required=True, help="User recorded in the log")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from colony_config import get_active_config
    from colony_kernel.db.engine import init_engine_from_url, session_scope
    from colony_kernel.logging_config import configure_logging
    from colony_kernel.services.user_service import UserService

    config = get_active_config()
    configure_logging(level=config.log_level)
    init_engine_from_url(config.database_url)

    with session_scope() as session:
        assigned = UserService(session, config=config).backfill_user_codes(args.actor_id)

    for user in assigned:
        print(f"  {user.user_code:<10} {user.email}")
    print(f"Assigned {len(assigned)} user codes.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
