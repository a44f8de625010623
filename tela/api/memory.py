"""
Memory API.

POST   /v1/memory                 Create (409 when key + type already exists)
PUT    /v1/memory                 Create or overwrite by key + type
GET    /v1/memory                 List with type / tag / importance / search filters
GET    /v1/memory/stats           Counts by type, high-importance count, top tags
GET    /v1/memory/top             Most important entries
GET    /v1/memory/key/{key}       Lookup by key, optionally narrowed by type
GET    /v1/memory/{id}            Read (records the access)
PATCH  /v1/memory/{id}            Update
POST   /v1/memory/{id}/tags       Add tags
DELETE /v1/memory/{id}/tags       Remove tags
DELETE /v1/memory/{id}            Delete
"""

from datetime import datetime
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_user
from ..core.errors import NotFoundError
from ..models.account import Account
from ..models.memory import MemoryType, MIN_IMPORTANCE, MAX_IMPORTANCE
from ..services import memory as memory_service
from ..services.memory import MemoryFilters
from .common import (
    ApiResponse, PageParams, UtcDatetime,
    csv_enum, csv_list, current_account, ok, page_params, paged, search_param,
)

memory_router = APIRouter(prefix="/memory", tags=["memory"])

MemoryKey = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
MemoryDescription = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]
IMPORTANCE_RANGE = dict(ge=MIN_IMPORTANCE, le=MAX_IMPORTANCE)


class MemoryCreate(BaseModel):
    type: MemoryType
    key: MemoryKey
    value: Any
    description: Optional[MemoryDescription] = None
    importance: Optional[int] = Field(None, **IMPORTANCE_RANGE)
    tags: list[Tag] = []
    expires_at: Optional[UtcDatetime] = None

    @field_validator("value")
    @classmethod
    def value_required(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("value is required")
        return value


class MemoryUpdate(BaseModel):
    type: Optional[MemoryType] = None
    key: Optional[MemoryKey] = None
    value: Any = None
    description: Optional[MemoryDescription] = None
    importance: Optional[int] = Field(None, **IMPORTANCE_RANGE)
    tags: Optional[list[Tag]] = None
    expires_at: Optional[UtcDatetime] = None


class TagsRequest(BaseModel):
    tags: list[Tag] = Field(min_length=1)


class MemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    key: str
    value: Any
    description: Optional[str] = None
    importance: int
    tags: list[str]
    expires_at: Optional[datetime] = None
    access_count: int
    last_accessed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


def _out(entry) -> MemoryOut:
    return MemoryOut.model_validate(entry)


def _create_kwargs(request: MemoryCreate) -> dict:
    return dict(
        type=request.type.value,
        key=request.key,
        value=request.value,
        description=request.description,
        importance=request.importance,
        tags=request.tags,
        expires_at=request.expires_at,
    )


@memory_router.post("", response_model=ApiResponse, status_code=201)
async def create_memory(
    request: MemoryCreate,
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
):
    kwargs = _create_kwargs(request)
    if kwargs["importance"] is None:
        del kwargs["importance"]
    entry = await memory_service.create_memory(db, account, **kwargs)
    return ok(_out(entry), message="Memory entry created successfully")


@memory_router.put("", response_model=ApiResponse)
async def upsert_memory(
    request: MemoryCreate,
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
):
    entry, created = await memory_service.upsert_memory(db, account, **_create_kwargs(request))
    message = "Memory entry created successfully" if created else "Memory entry updated successfully"
    return ok(_out(entry), message=message)


@memory_router.get("", response_model=ApiResponse)
async def list_memories(
    type: Optional[str] = Query(None, description="Comma-separated memory types"),
    tags: Optional[str] = Query(None, description="Comma-separated tags, any-of"),
    importance_min: Optional[int] = Query(None, **IMPORTANCE_RANGE),
    importance_max: Optional[int] = Query(None, **IMPORTANCE_RANGE),
    search: Optional[str] = Depends(search_param),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    filters = MemoryFilters(
        types=csv_enum(type, MemoryType, "type"),
        tags=csv_list(tags),
        importance_min=importance_min,
        importance_max=importance_max,
        search=search,
    )
    page = await memory_service.list_memories(db, user.user_id, filters, params.page, params.limit)
    return paged(page, [_out(m) for m in page.items])


@memory_router.get("/stats", response_model=ApiResponse)
async def memory_stats(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await memory_service.memory_stats(db, user.user_id))


@memory_router.get("/top", response_model=ApiResponse)
async def top_memories(
    limit: int = Query(10, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await memory_service.top_memories(db, user.user_id, limit=limit)
    return ok([_out(m) for m in entries])


@memory_router.get("/key/{key}", response_model=ApiResponse)
async def get_by_key(
    key: str,
    type: Optional[MemoryType] = None,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await memory_service.find_by_key(db, user.user_id, key, type.value if type else None)
    if not entry:
        raise NotFoundError("Memory entry not found")
    return ok(_out(entry))


@memory_router.get("/{memory_id}", response_model=ApiResponse)
async def get_memory(
    memory_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(_out(await memory_service.get_memory(db, user.user_id, memory_id)))


@memory_router.patch("/{memory_id}", response_model=ApiResponse)
async def update_memory(
    memory_id: str,
    request: MemoryUpdate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    changes = request.model_dump(mode="python", exclude_unset=True)
    # Required columns cannot be cleared
    for name in ("type", "key", "value", "importance"):
        if name in changes and changes[name] is None:
            del changes[name]
    if "type" in changes:
        changes["type"] = changes["type"].value

    entry = await memory_service.update_memory(db, user.user_id, memory_id, changes)
    return ok(_out(entry), message="Memory entry updated successfully")


@memory_router.post("/{memory_id}/tags", response_model=ApiResponse)
async def add_tags(
    memory_id: str,
    request: TagsRequest,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await memory_service.add_tags(db, user.user_id, memory_id, request.tags)
    return ok(_out(entry))


@memory_router.delete("/{memory_id}/tags", response_model=ApiResponse)
async def remove_tags(
    memory_id: str,
    tags: str = Query(..., min_length=1, description="Comma-separated tags to remove"),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await memory_service.remove_tags(db, user.user_id, memory_id, csv_list(tags))
    return ok(_out(entry))


@memory_router.delete("/{memory_id}", response_model=ApiResponse)
async def delete_memory(
    memory_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await memory_service.delete_memory(db, user.user_id, memory_id)
    return ok(message="Memory entry deleted successfully")
