"""
Tasks API.

POST   /v1/tasks                  Create a task
GET    /v1/tasks                  List with status / category / priority / overdue filters
GET    /v1/tasks/stats            Counts by status and category, overdue count
GET    /v1/tasks/upcoming         Open tasks due within the next N days
GET    /v1/tasks/{id}             Read
PATCH  /v1/tasks/{id}             Update
POST   /v1/tasks/{id}/complete    Mark completed
DELETE /v1/tasks/{id}             Delete
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_user
from ..models.account import Account
from ..models.task import TaskCategory, TaskPriority, TaskStatus
from ..services import tasks as task_service
from ..services.tasks import TaskFilters
from .common import ApiResponse, PageParams, UtcDatetime, csv_enum, current_account, ok, page_params, paged

tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])

TaskTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
TaskDescription = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]


class TaskCreate(BaseModel):
    title: TaskTitle
    description: Optional[TaskDescription] = None
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[UtcDatetime] = None
    ai_generated: bool = False
    metadata: Optional[dict] = None


class TaskUpdate(BaseModel):
    title: Optional[TaskTitle] = None
    description: Optional[TaskDescription] = None
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[UtcDatetime] = None
    metadata: Optional[dict] = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    category: str
    priority: str
    status: str
    due_date: Optional[datetime] = None
    ai_generated: bool
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    is_overdue: bool
    days_until_due: Optional[int] = None
    created_at: datetime
    updated_at: datetime


def _out(task) -> TaskOut:
    return TaskOut.model_validate(task)


@tasks_router.post("", response_model=ApiResponse, status_code=201)
async def create_task(
    request: TaskCreate,
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
):
    task = await task_service.create_task(
        db,
        account,
        title=request.title,
        description=request.description,
        category=request.category.value if request.category else None,
        priority=request.priority.value if request.priority else None,
        due_date=request.due_date,
        ai_generated=request.ai_generated,
        metadata=request.metadata,
    )
    return ok(_out(task), message="Task created successfully")


@tasks_router.get("", response_model=ApiResponse)
async def list_tasks(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    category: Optional[str] = Query(None, description="Comma-separated categories"),
    priority: Optional[str] = Query(None, description="Comma-separated priorities"),
    overdue: bool = False,
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    filters = TaskFilters(
        statuses=csv_enum(status, TaskStatus, "status"),
        categories=csv_enum(category, TaskCategory, "category"),
        priorities=csv_enum(priority, TaskPriority, "priority"),
        overdue=overdue,
    )
    page = await task_service.list_tasks(db, user.user_id, filters, params.page, params.limit)
    return paged(page, [_out(t) for t in page.items])


@tasks_router.get("/stats", response_model=ApiResponse)
async def task_stats(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await task_service.task_stats(db, user.user_id))


@tasks_router.get("/upcoming", response_model=ApiResponse)
async def upcoming(
    days: int = Query(7, ge=1, le=365),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    tasks = await task_service.upcoming_deadlines(db, user.user_id, days=days)
    return ok([_out(t) for t in tasks])


@tasks_router.get("/{task_id}", response_model=ApiResponse)
async def get_task(
    task_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(_out(await task_service.get_task(db, user.user_id, task_id)))


@tasks_router.patch("/{task_id}", response_model=ApiResponse)
async def update_task(
    task_id: str,
    request: TaskUpdate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    changes = request.model_dump(mode="python", exclude_unset=True)
    # Required columns cannot be cleared
    for name in ("title", "category", "priority", "status"):
        if name in changes and changes[name] is None:
            del changes[name]
    for name in ("category", "priority", "status"):
        if name in changes:
            changes[name] = changes[name].value
    if "metadata" in changes:
        changes["metadata_"] = changes.pop("metadata") or {}

    task = await task_service.update_task(db, user.user_id, task_id, changes)
    return ok(_out(task), message="Task updated successfully")


@tasks_router.post("/{task_id}/complete", response_model=ApiResponse)
async def complete_task(
    task_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    task = await task_service.complete_task(db, user.user_id, task_id)
    return ok(_out(task), message="Task marked as completed")


@tasks_router.delete("/{task_id}", response_model=ApiResponse)
async def delete_task(
    task_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await task_service.delete_task(db, user.user_id, task_id)
    return ok(message="Task deleted successfully")
