"""
Uploaded files: upload with size / type / plan checks, filtered listing,
metadata edits, visibility, download, delete and stats.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from functools import partial
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.database import after_commit
from ..core.errors import NotFoundError, ValidationFailed
from ..core.storage import StorageBackend
from ..models.account import Account
from ..models.base import utcnow
from ..models.file import UserFile, format_size
from . import realtime
from .accounts import ensure_plan_allows
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

LARGE_FILE_BYTES = 5 * 1024 * 1024
TOP_MIME_TYPES = 10
DEFAULT_MIME_TYPE = "application/octet-stream"

SORT_COLUMNS = {
    "created_at": UserFile.created_at,
    "size": UserFile.size,
    "filename": UserFile.filename,
    "original_name": UserFile.original_name,
}


@dataclass
class FileFilters:
    categories: list[str] = field(default_factory=list)
    mime_types: list[str] = field(default_factory=list)
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    is_public: Optional[bool] = None
    search: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


def normalize_mime_type(content_type: Optional[str]) -> str:
    """'Text/Plain; charset=utf-8' -> 'text/plain'."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    return mime or DEFAULT_MIME_TYPE


async def count_files(db: AsyncSession, user_id: str) -> int:
    return await db.scalar(select(func.count(UserFile.id)).where(UserFile.user_id == user_id)) or 0


async def upload_file(
    db: AsyncSession,
    account: Account,
    storage: StorageBackend,
    *,
    data: bytes,
    original_name: str,
    content_type: Optional[str],
    category: Optional[str] = None,
    is_public: bool = False,
    metadata: Optional[dict] = None,
) -> UserFile:
    settings = get_settings()
    mime_type = normalize_mime_type(content_type)

    errors = []
    if len(data) > settings.upload_max_size:
        errors.append(
            f"file: exceeds the maximum upload size of {format_size(settings.upload_max_size)}"
        )
    if mime_type not in settings.allowed_upload_types:
        errors.append(f"file: type '{mime_type}' is not allowed")
    if errors:
        raise ValidationFailed(errors, "File rejected")

    ensure_plan_allows(account, "max_files", await count_files(db, account.user_id))

    stored = await storage.upload(data, original_name, account.user_id, mime_type)

    record = UserFile(
        user_id=account.user_id,
        filename=stored.filename,
        original_name=original_name,
        mime_type=mime_type,
        size=len(data),
        path=stored.path,
        url=stored.url or None,
        is_public=is_public,
        metadata_=metadata or {},
    )
    # Omitted category falls back to the mime-type default on insert
    if category:
        record.category = category
    db.add(record)
    try:
        await db.flush()
    except Exception:
        # The row never made it, so the stored bytes would be unreachable
        await storage.delete(stored.path)
        raise

    logger.info(
        "File uploaded (user=%s file=%s size=%d mime=%s)",
        account.user_id, record.id, record.size, mime_type,
    )
    realtime.file_uploaded(db, account.user_id, record.id, record.category)
    return record


async def list_files(db: AsyncSession, user_id: str, filters: FileFilters, page: int, limit: int) -> Page:
    conditions = [UserFile.user_id == user_id]
    if filters.categories:
        conditions.append(UserFile.category.in_(filters.categories))
    if filters.mime_types:
        conditions.append(UserFile.mime_type.in_([m.lower() for m in filters.mime_types]))
    if filters.min_size is not None:
        conditions.append(UserFile.size >= filters.min_size)
    if filters.max_size is not None:
        conditions.append(UserFile.size <= filters.max_size)
    if filters.is_public is not None:
        conditions.append(UserFile.is_public == filters.is_public)
    if filters.search:
        conditions.append(or_(
            UserFile.filename.icontains(filters.search, autoescape=True),
            UserFile.original_name.icontains(filters.search, autoescape=True),
        ))

    column = SORT_COLUMNS.get(filters.sort_by, UserFile.created_at)
    ordering = column.asc() if filters.sort_order == "asc" else column.desc()
    stmt = select(UserFile).where(*conditions).order_by(ordering, UserFile.id)
    return await paginate(db, stmt, page, limit)


async def get_file(db: AsyncSession, user_id: str, file_id: str) -> UserFile:
    result = await db.execute(select(UserFile).where(UserFile.id == file_id, UserFile.user_id == user_id))
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("File not found")
    return record


async def update_file(
    db: AsyncSession,
    user_id: str,
    file_id: str,
    *,
    metadata: Optional[dict] = None,
    category: Optional[str] = None,
    is_public: Optional[bool] = None,
) -> UserFile:
    record = await get_file(db, user_id, file_id)
    if metadata:
        record.update_metadata(metadata)
    if category:
        record.category = category
    if is_public is not None:
        record.is_public = is_public
    await db.flush()
    return record


async def toggle_visibility(db: AsyncSession, user_id: str, file_id: str) -> UserFile:
    record = await get_file(db, user_id, file_id)
    record.toggle_public()
    await db.flush()
    return record


async def read_file(db: AsyncSession, user_id: str, file_id: str, storage: StorageBackend) -> tuple[UserFile, Optional[bytes]]:
    """Return the row and its bytes. Bytes are None when the backend serves by URL."""
    record = await get_file(db, user_id, file_id)
    data = await storage.read(record.path)
    if data is None and not record.url:
        logger.error("Stored bytes missing for file %s at %s", record.id, record.path)
        raise NotFoundError("File content not found")
    return record, data


async def delete_file(db: AsyncSession, user_id: str, file_id: str, storage: StorageBackend) -> None:
    record = await get_file(db, user_id, file_id)
    await db.delete(record)
    await db.flush()
    # Bytes go only once the row deletion is committed
    after_commit(db, partial(storage.delete, record.path))
    logger.info("File deleted (user=%s file=%s)", user_id, file_id)


async def file_stats(db: AsyncSession, user_id: str) -> dict:
    rows = await db.execute(
        select(UserFile.category, func.count(UserFile.id), func.sum(UserFile.size), func.avg(UserFile.size))
        .where(UserFile.user_id == user_id)
        .group_by(UserFile.category)
    )
    by_category = {
        category: {
            "count": count,
            "total_size": int(total or 0),
            "avg_size": round(float(avg or 0)),
        }
        for category, count, total, avg in rows.all()
    }

    public_files = await db.scalar(
        select(func.count(UserFile.id)).where(UserFile.user_id == user_id, UserFile.is_public == True)  # noqa: E712
    ) or 0

    mime_count = func.count(UserFile.id).label("count")
    mime_rows = await db.execute(
        select(UserFile.mime_type, mime_count)
        .where(UserFile.user_id == user_id)
        .group_by(UserFile.mime_type)
        .order_by(mime_count.desc(), UserFile.mime_type)
        .limit(TOP_MIME_TYPES)
    )

    return {
        "total_files": sum(c["count"] for c in by_category.values()),
        "total_size": sum(c["total_size"] for c in by_category.values()),
        "public_files": public_files,
        "by_category": by_category,
        "top_mime_types": [{"type": mime, "count": count} for mime, count in mime_rows.all()],
    }


async def large_files(db: AsyncSession, user_id: str, min_size: int = LARGE_FILE_BYTES, limit: int = 10) -> list[UserFile]:
    result = await db.execute(
        select(UserFile)
        .where(UserFile.user_id == user_id, UserFile.size >= min_size)
        .order_by(UserFile.size.desc(), UserFile.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def recent_files(db: AsyncSession, user_id: str, days: int = 7, limit: int = 20) -> list[UserFile]:
    cutoff = utcnow() - timedelta(days=days)
    result = await db.execute(
        select(UserFile)
        .where(UserFile.user_id == user_id, UserFile.created_at >= cutoff)
        .order_by(UserFile.created_at.desc(), UserFile.id)
        .limit(limit)
    )
    return list(result.scalars().all())
