"""
Files API.

POST   /v1/files/upload                 Multipart upload
GET    /v1/files                        List with category / mime / size / visibility filters
GET    /v1/files/stats                  Totals, per-category sizes, top mime types
GET    /v1/files/large                  Files of 5 MB and up
GET    /v1/files/recent                 Uploaded in the last N days
GET    /v1/files/{id}                   Read
GET    /v1/files/{id}/download          File bytes (or a redirect to the object URL)
PUT    /v1/files/{id}                   Merge metadata, change category / visibility
POST   /v1/files/{id}/toggle-visibility Flip is_public
DELETE /v1/files/{id}                   Delete row and stored bytes
"""

from datetime import datetime
from typing import Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.config import get_settings
from ..core.dependencies import get_db, get_storage_dep, require_user
from ..core.storage import StorageBackend
from ..models.account import Account
from ..models.file import FileCategory, UserFile
from ..services import files as file_service
from ..services.files import FileFilters, LARGE_FILE_BYTES
from .common import ApiResponse, PageParams, csv_enum, csv_list, current_account, ok, page_params, paged, search_param

files_router = APIRouter(prefix="/files", tags=["files"])


class FileUpdate(BaseModel):
    metadata: Optional[dict] = None
    category: Optional[FileCategory] = None
    is_public: Optional[bool] = None


class FileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    size_formatted: str
    type_description: str
    extension: str
    url: Optional[str] = None
    category: str
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    is_public: bool
    created_at: datetime
    updated_at: datetime


def _out(record: UserFile) -> FileOut:
    return FileOut.model_validate(record)


@files_router.post("/upload", response_model=ApiResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    category: Optional[FileCategory] = Form(None),
    is_public: bool = Form(False),
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    """Upload one file as multipart/form-data under the "file" field."""
    # One byte past the limit is enough to reject
    data = await file.read(get_settings().upload_max_size + 1)
    record = await file_service.upload_file(
        db,
        account,
        storage,
        data=data,
        original_name=file.filename or "upload",
        content_type=file.content_type,
        category=category.value if category else None,
        is_public=is_public,
    )
    return ok(_out(record), message="File uploaded successfully")


@files_router.get("", response_model=ApiResponse)
async def list_files(
    category: Optional[str] = Query(None, description="Comma-separated categories"),
    mime_type: Optional[str] = Query(None, description="Comma-separated mime types"),
    min_size: Optional[int] = Query(None, ge=0),
    max_size: Optional[int] = Query(None, ge=0),
    is_public: Optional[bool] = None,
    search: Optional[str] = Depends(search_param),
    sort_by: Literal["created_at", "size", "filename", "original_name"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    filters = FileFilters(
        categories=csv_enum(category, FileCategory, "category"),
        mime_types=csv_list(mime_type),
        min_size=min_size,
        max_size=max_size,
        is_public=is_public,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    page = await file_service.list_files(db, user.user_id, filters, params.page, params.limit)
    return paged(page, [_out(f) for f in page.items])


@files_router.get("/stats", response_model=ApiResponse)
async def file_stats(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await file_service.file_stats(db, user.user_id))


@files_router.get("/large", response_model=ApiResponse)
async def large_files(
    min_size: int = Query(LARGE_FILE_BYTES, ge=0),
    limit: int = Query(10, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    records = await file_service.large_files(db, user.user_id, min_size=min_size, limit=limit)
    return ok([_out(f) for f in records])


@files_router.get("/recent", response_model=ApiResponse)
async def recent_files(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    records = await file_service.recent_files(db, user.user_id, days=days, limit=limit)
    return ok([_out(f) for f in records])


@files_router.get("/{file_id}", response_model=ApiResponse)
async def get_file(
    file_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(_out(await file_service.get_file(db, user.user_id, file_id)))


@files_router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    record, data = await file_service.read_file(db, user.user_id, file_id, storage)
    if data is None:
        return RedirectResponse(record.url)
    return Response(
        content=data,
        media_type=record.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.original_name)}"},
    )


@files_router.put("/{file_id}", response_model=ApiResponse)
async def update_file(
    file_id: str,
    request: FileUpdate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    record = await file_service.update_file(
        db,
        user.user_id,
        file_id,
        metadata=request.metadata,
        category=request.category.value if request.category else None,
        is_public=request.is_public,
    )
    return ok(_out(record), message="File updated successfully")


@files_router.post("/{file_id}/toggle-visibility", response_model=ApiResponse)
async def toggle_visibility(
    file_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    record = await file_service.toggle_visibility(db, user.user_id, file_id)
    return ok(_out(record))


@files_router.delete("/{file_id}", response_model=ApiResponse)
async def delete_file(
    file_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    await file_service.delete_file(db, user.user_id, file_id, storage)
    return ok(message="File deleted successfully")
