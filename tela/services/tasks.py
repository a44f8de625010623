"""
Tasks: CRUD, filtered listing, completion, stats and upcoming deadlines.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import NotFoundError
from ..models.account import Account
from ..models.base import utcnow
from ..models.task import Task, PRIORITY_RANK, CLOSED_STATUSES
from .accounts import ensure_plan_allows
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

_UPDATABLE = ("title", "description", "category", "priority", "status", "due_date", "ai_generated", "metadata_")


@dataclass
class TaskFilters:
    statuses: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    overdue: bool = False


def _priority_rank():
    return case(PRIORITY_RANK, value=Task.priority, else_=0)


def _overdue_clause(now: datetime):
    return (
        Task.due_date.is_not(None)
        & (Task.due_date < now)
        & Task.status.not_in(CLOSED_STATUSES)
    )


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_tasks_this_month(db: AsyncSession, user_id: str) -> int:
    return await db.scalar(
        select(func.count(Task.id)).where(
            Task.user_id == user_id,
            Task.created_at >= month_start(),
        )
    ) or 0


async def list_tasks(db: AsyncSession, user_id: str, filters: TaskFilters, page: int, limit: int) -> Page:
    conditions = [Task.user_id == user_id]
    if filters.statuses:
        conditions.append(Task.status.in_(filters.statuses))
    if filters.categories:
        conditions.append(Task.category.in_(filters.categories))
    if filters.priorities:
        conditions.append(Task.priority.in_(filters.priorities))
    if filters.overdue:
        conditions.append(_overdue_clause(utcnow()))

    stmt = (
        select(Task)
        .where(*conditions)
        .order_by(
            _priority_rank().desc(),
            Task.due_date.is_(None),
            Task.due_date.asc(),
            Task.created_at.desc(),
            Task.id,
        )
    )
    return await paginate(db, stmt, page, limit)


async def get_task(db: AsyncSession, user_id: str, task_id: str) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id, Task.user_id == user_id))
    task = result.scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


async def create_task(
    db: AsyncSession,
    account: Account,
    *,
    title: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    due_date: Optional[datetime] = None,
    ai_generated: bool = False,
    metadata: Optional[dict] = None,
) -> Task:
    ensure_plan_allows(account, "max_tasks_per_month", await count_tasks_this_month(db, account.user_id))

    task = Task(
        user_id=account.user_id,
        title=title,
        description=description,
        due_date=due_date,
        ai_generated=ai_generated,
        metadata_=metadata or {},
    )
    # Leave the column defaults in charge when omitted
    if category:
        task.category = category
    if priority:
        task.priority = priority

    db.add(task)
    await db.flush()
    logger.info("Task created (user=%s task=%s)", account.user_id, task.id)
    return task


async def update_task(db: AsyncSession, user_id: str, task_id: str, changes: dict) -> Task:
    task = await get_task(db, user_id, task_id)
    for name in _UPDATABLE:
        if name in changes:
            setattr(task, name, changes[name])
    await db.flush()
    return task


async def complete_task(db: AsyncSession, user_id: str, task_id: str) -> Task:
    task = await get_task(db, user_id, task_id)
    task.mark_completed()
    await db.flush()
    logger.info("Task completed (user=%s task=%s)", user_id, task_id)
    return task


async def delete_task(db: AsyncSession, user_id: str, task_id: str) -> None:
    task = await get_task(db, user_id, task_id)
    await db.delete(task)
    await db.flush()


async def task_stats(db: AsyncSession, user_id: str) -> dict:
    by_status = dict((await db.execute(
        select(Task.status, func.count(Task.id)).where(Task.user_id == user_id).group_by(Task.status)
    )).all())
    by_category = dict((await db.execute(
        select(Task.category, func.count(Task.id)).where(Task.user_id == user_id).group_by(Task.category)
    )).all())
    overdue = await db.scalar(
        select(func.count(Task.id)).where(Task.user_id == user_id, _overdue_clause(utcnow()))
    ) or 0

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_category": by_category,
        "overdue": overdue,
    }


async def upcoming_deadlines(db: AsyncSession, user_id: str, days: int = 7) -> list[Task]:
    """Open tasks due between now and `days` from now, soonest first."""
    now = utcnow()
    result = await db.execute(
        select(Task)
        .where(
            Task.user_id == user_id,
            Task.due_date >= now,
            Task.due_date <= now + timedelta(days=days),
            Task.status.not_in(CLOSED_STATUSES),
        )
        .order_by(Task.due_date.asc(), Task.id)
    )
    return list(result.scalars().all())
