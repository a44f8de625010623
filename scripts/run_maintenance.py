#!/usr/bin/env python3
"""
Run the periodic cleanup sweeps once: drop expired memory entries and fail
design projects stuck in "generating".

Meant for cron / a scheduler.

Usage:
    python scripts/run_maintenance.py [--stuck-hours 24] [--init-db]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Make the tela package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from tela.core.config import get_settings
from tela.core.database import close_db, init_db, session_scope
from tela.services.maintenance import run_maintenance

logger = logging.getLogger("tela.maintenance")


async def main(stuck_hours: int, create_tables: bool) -> dict:
    if create_tables:
        await init_db()
    try:
        async with session_scope() as db:
            return await run_maintenance(db, stuck_hours=stuck_hours)
    finally:
        await close_db()


if __name__ == "__main__":
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run Tela maintenance sweeps")
    parser.add_argument(
        "--stuck-hours",
        type=int,
        default=settings.stuck_project_hours,
        help="Fail design projects generating for longer than this (default: %(default)s)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before sweeping",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    report = asyncio.run(main(args.stuck_hours, args.init_db))
    print(f"Expired memory entries removed: {report['expired_memories']}")
    print(f"Stuck design projects failed:   {report['stuck_projects']}")
