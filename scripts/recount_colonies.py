#!/usr/bin/env python3
"""
Check every colony's cached plot counts against its plots and repair drift.

Without --fix the script only reports; exit status 2 means drift was found.

Usage:
    python3 scripts/recount_colonies.py
    python3 scripts/recount_colonies.py --fix
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("--fix", action="store_true", help="Recount colonies that drifted")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from colony_config import get_active_config
    from colony_kernel.db.engine import init_engine_from_url, session_scope
    from colony_kernel.logging_config import configure_logging
    from colony_kernel.selectors.colony_selector import ColonySelector
    from colony_kernel.services.colony_service import ColonyService

    config = get_active_config()
    configure_logging(level=config.log_level)
    init_engine_from_url(config.database_url)

    drifted = 0
    with session_scope() as session:
        selector = ColonySelector(session)
        for colony_id in selector.all_colony_ids():
            drift = selector.verify_counts(colony_id)
            if not drift.has_drift:
                continue
            drifted += 1
            print(f"{colony_id}: drift in {', '.join(drift.drifted_fields)}")
            for field in drift.drifted_fields:
                print(f"    {field}: cached={drift.cached[field]} actual={drift.actual[field]}")
            if args.fix:
                ColonyService(session).recount(colony_id)

    if not drifted:
        print("All colony counts match their plots.")
        return 0
    if args.fix:
        print(f"Recounted {drifted} colonies.")
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
