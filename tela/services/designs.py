"""
Design projects: lifecycle, generated content, listing, stats and the
stuck-generation sweep.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidTransitionError, NotFoundError
from ..models.base import utcnow
from ..models.design import DesignContent, DesignProject, DesignStatus, STUCK_ERROR_NOTE
from . import realtime
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

DEFAULT_STUCK_HOURS = 24


@dataclass
class DesignFilters:
    statuses: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)
    search: Optional[str] = None


def _search_clause(term: str):
    return or_(
        DesignProject.name.icontains(term, autoescape=True),
        DesignProject.description.icontains(term, autoescape=True),
        DesignProject.prompt.icontains(term, autoescape=True),
    )


def _newest_first(stmt):
    return stmt.order_by(DesignProject.created_at.desc(), DesignProject.id)


async def list_designs(db: AsyncSession, user_id: str, filters: DesignFilters, page: int, limit: int) -> Page:
    conditions = [DesignProject.user_id == user_id]
    if filters.statuses:
        conditions.append(DesignProject.status.in_(filters.statuses))
    if filters.types:
        conditions.append(DesignProject.type.in_(filters.types))
    if filters.search:
        conditions.append(_search_clause(filters.search))
    return await paginate(db, _newest_first(select(DesignProject).where(*conditions)), page, limit)


async def get_design(db: AsyncSession, user_id: str, project_id: str) -> DesignProject:
    result = await db.execute(
        select(DesignProject).where(DesignProject.id == project_id, DesignProject.user_id == user_id)
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Design project not found")
    return project


async def create_design(
    db: AsyncSession,
    user_id: str,
    *,
    name: str,
    prompt: str,
    type: Optional[str] = None,
    description: Optional[str] = None,
    brand_colors: Optional[list[str]] = None,
    metadata: Optional[dict] = None,
) -> DesignProject:
    project = DesignProject(
        user_id=user_id,
        name=name,
        prompt=prompt,
        description=description,
        status=DesignStatus.GENERATING.value,
        brand_colors=brand_colors or [],
        metadata_=metadata or {},
        contents=[],
    )
    if type:
        project.type = type
    db.add(project)
    await db.flush()
    logger.info("Design project created (user=%s project=%s type=%s)", user_id, project.id, project.type)
    return project


async def _set_status(db: AsyncSession, project: DesignProject, status: str, error: Optional[str] = None) -> None:
    if status == project.status:
        return
    if not project.can_transition_to(status):
        raise InvalidTransitionError(
            f"Cannot move design project from '{project.status}' to '{status}'"
        )
    if status == DesignStatus.FAILED.value:
        project.mark_failed(error)
    else:
        project.status = status
    await db.flush()
    realtime.design_status_changed(db, project.user_id, project.id, status)


async def update_design(db: AsyncSession, user_id: str, project_id: str, changes: dict) -> DesignProject:
    project = await get_design(db, user_id, project_id)
    if "name" in changes:
        project.name = changes["name"]
    if "description" in changes:
        project.description = changes["description"]
    if "brand_colors" in changes:
        project.brand_colors = changes["brand_colors"] or []
    await db.flush()

    if changes.get("status"):
        await _set_status(db, project, changes["status"])
    return project


async def add_design_content(
    db: AsyncSession,
    user_id: str,
    project_id: str,
    *,
    type: str,
    content: str,
    url: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> DesignContent:
    project = await get_design(db, user_id, project_id)
    item = project.add_content(type, content, url=url, metadata=metadata)
    await db.flush()
    return item


async def complete_design(db: AsyncSession, user_id: str, project_id: str) -> DesignProject:
    project = await get_design(db, user_id, project_id)
    await _set_status(db, project, DesignStatus.COMPLETED.value)
    return project


async def fail_design(db: AsyncSession, user_id: str, project_id: str, error: Optional[str] = None) -> DesignProject:
    project = await get_design(db, user_id, project_id)
    await _set_status(db, project, DesignStatus.FAILED.value, error=error)
    logger.warning("Design project failed (user=%s project=%s): %s", user_id, project_id, error)
    return project


async def delete_design(db: AsyncSession, user_id: str, project_id: str) -> None:
    project = await get_design(db, user_id, project_id)
    await db.delete(project)
    await db.flush()


async def design_stats(db: AsyncSession, user_id: str) -> dict:
    by_status = dict((await db.execute(
        select(DesignProject.status, func.count(DesignProject.id))
        .where(DesignProject.user_id == user_id)
        .group_by(DesignProject.status)
    )).all())
    by_type = dict((await db.execute(
        select(DesignProject.type, func.count(DesignProject.id))
        .where(DesignProject.user_id == user_id)
        .group_by(DesignProject.type)
    )).all())
    total_content = await db.scalar(
        select(func.count(DesignContent.id))
        .join(DesignProject, DesignContent.project_id == DesignProject.id)
        .where(DesignProject.user_id == user_id)
    ) or 0

    total = sum(by_status.values())
    return {
        "total": total,
        "by_status": by_status,
        "by_type": by_type,
        "total_content": total_content,
        "avg_content_per_project": round(total_content / total, 1) if total else 0,
    }


async def recent_designs(db: AsyncSession, user_id: str, days: int = 7, limit: int = 10) -> list[DesignProject]:
    cutoff = utcnow() - timedelta(days=days)
    result = await db.execute(
        _newest_first(
            select(DesignProject).where(DesignProject.user_id == user_id, DesignProject.created_at >= cutoff)
        ).limit(limit)
    )
    return list(result.scalars().all())


async def failed_designs(db: AsyncSession, user_id: str, limit: int = 20) -> list[DesignProject]:
    result = await db.execute(
        _newest_first(
            select(DesignProject).where(
                DesignProject.user_id == user_id,
                DesignProject.status == DesignStatus.FAILED.value,
            )
        ).limit(limit)
    )
    return list(result.scalars().all())


async def cleanup_stuck_projects(db: AsyncSession, hours: int = DEFAULT_STUCK_HOURS) -> int:
    """Fail every project still generating after `hours`, across all users."""
    cutoff = utcnow() - timedelta(hours=hours)
    result = await db.execute(
        select(DesignProject).where(
            DesignProject.status == DesignStatus.GENERATING.value,
            DesignProject.created_at < cutoff,
        )
    )
    stuck = list(result.scalars().all())
    for project in stuck:
        project.mark_failed(STUCK_ERROR_NOTE)
    await db.flush()

    for project in stuck:
        realtime.design_status_changed(db, project.user_id, project.id, project.status)

    logger.info("Stuck design projects marked failed: %d", len(stuck))
    return len(stuck)
