"""
Design projects API.

POST   /v1/designs                  Create (status starts at "generating")
GET    /v1/designs                  List with status / type / search filters
GET    /v1/designs/stats            Counts by status and type, content totals
GET    /v1/designs/recent           Created in the last N days
GET    /v1/designs/failed           Failed projects
GET    /v1/designs/{id}             Read with generated content
PATCH  /v1/designs/{id}             Update name / description / colors / status
POST   /v1/designs/{id}/content     Attach generated content
POST   /v1/designs/{id}/complete    generating -> completed
POST   /v1/designs/{id}/fail        generating -> failed, with an error note
DELETE /v1/designs/{id}             Delete
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_user
from ..models.design import ContentType, DesignProject, DesignStatus, DesignType
from ..services import designs as design_service
from ..services.designs import DesignFilters
from .common import ApiResponse, PageParams, csv_enum, ok, page_params, paged, search_param

designs_router = APIRouter(prefix="/designs", tags=["designs"])

DesignName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
DesignDescription = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Prompt = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
HexColor = Annotated[str, StringConstraints(pattern=r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")]


class DesignCreate(BaseModel):
    name: DesignName
    prompt: Prompt
    type: Optional[DesignType] = None
    description: Optional[DesignDescription] = None
    brand_colors: list[HexColor] = []
    metadata: Optional[dict] = None


class DesignUpdate(BaseModel):
    name: Optional[DesignName] = None
    description: Optional[DesignDescription] = None
    brand_colors: Optional[list[HexColor]] = None
    status: Optional[DesignStatus] = None


class ContentCreate(BaseModel):
    type: ContentType
    content: Annotated[str, StringConstraints(min_length=1)]
    url: Optional[str] = None
    metadata: Optional[dict] = None


class FailRequest(BaseModel):
    error: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class ContentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    content: str
    url: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    timestamp: datetime


class DesignSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    type: str
    prompt: str
    status: str
    brand_colors: list[str]
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    content_count: int
    generation_duration: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class DesignDetail(DesignSummary):
    contents: list[ContentOut]


def _summary(project: DesignProject) -> DesignSummary:
    return DesignSummary.model_validate(project)


def _detail(project: DesignProject) -> DesignDetail:
    return DesignDetail.model_validate(project)


@designs_router.post("", response_model=ApiResponse, status_code=201)
async def create_design(
    request: DesignCreate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    project = await design_service.create_design(
        db,
        user.user_id,
        name=request.name,
        prompt=request.prompt,
        type=request.type.value if request.type else None,
        description=request.description,
        brand_colors=request.brand_colors,
        metadata=request.metadata,
    )
    return ok(_detail(project), message="Design project created successfully")


@designs_router.get("", response_model=ApiResponse)
async def list_designs(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    type: Optional[str] = Query(None, description="Comma-separated design types"),
    search: Optional[str] = Depends(search_param),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    filters = DesignFilters(
        statuses=csv_enum(status, DesignStatus, "status"),
        types=csv_enum(type, DesignType, "type"),
        search=search,
    )
    page = await design_service.list_designs(db, user.user_id, filters, params.page, params.limit)
    return paged(page, [_summary(p) for p in page.items])


@designs_router.get("/stats", response_model=ApiResponse)
async def design_stats(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await design_service.design_stats(db, user.user_id))


@designs_router.get("/recent", response_model=ApiResponse)
async def recent_designs(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(10, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    projects = await design_service.recent_designs(db, user.user_id, days=days, limit=limit)
    return ok([_summary(p) for p in projects])


@designs_router.get("/failed", response_model=ApiResponse)
async def failed_designs(
    limit: int = Query(20, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    projects = await design_service.failed_designs(db, user.user_id, limit=limit)
    return ok([_summary(p) for p in projects])


@designs_router.get("/{project_id}", response_model=ApiResponse)
async def get_design(
    project_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(_detail(await design_service.get_design(db, user.user_id, project_id)))


@designs_router.patch("/{project_id}", response_model=ApiResponse)
async def update_design(
    project_id: str,
    request: DesignUpdate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    changes = request.model_dump(mode="python", exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    if changes.get("status") is not None:
        changes["status"] = changes["status"].value

    project = await design_service.update_design(db, user.user_id, project_id, changes)
    return ok(_detail(project), message="Design project updated successfully")


@designs_router.post("/{project_id}/content", response_model=ApiResponse, status_code=201)
async def add_content(
    project_id: str,
    request: ContentCreate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    item = await design_service.add_design_content(
        db,
        user.user_id,
        project_id,
        type=request.type.value,
        content=request.content,
        url=request.url,
        metadata=request.metadata,
    )
    return ok(ContentOut.model_validate(item), message="Content added successfully")


@designs_router.post("/{project_id}/complete", response_model=ApiResponse)
async def complete_design(
    project_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    project = await design_service.complete_design(db, user.user_id, project_id)
    return ok(_detail(project), message="Design project completed")


@designs_router.post("/{project_id}/fail", response_model=ApiResponse)
async def fail_design(
    project_id: str,
    request: FailRequest,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    project = await design_service.fail_design(db, user.user_id, project_id, error=request.error)
    return ok(_detail(project), message="Design project marked as failed")


@designs_router.delete("/{project_id}", response_model=ApiResponse)
async def delete_design(
    project_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await design_service.delete_design(db, user.user_id, project_id)
    return ok(message="Design project deleted successfully")
