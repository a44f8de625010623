"""
Periodic cleanup. Run on a schedule by scripts/run_maintenance.py.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from .designs import cleanup_stuck_projects
from .memory import cleanup_expired_memories

logger = logging.getLogger(__name__)


async def run_maintenance(db: AsyncSession, stuck_hours: Optional[int] = None) -> dict:
    hours = stuck_hours if stuck_hours is not None else get_settings().stuck_project_hours
    report = {
        "expired_memories": await cleanup_expired_memories(db),
        "stuck_projects": await cleanup_stuck_projects(db, hours=hours),
    }
    logger.info("Maintenance finished: %s", report)
    return report
