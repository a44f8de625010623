"""
Shared pieces for the v1 routers: the response envelope, pagination
parameters, comma-separated enum filters and the caller's account.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from fastapi import Depends, Query
from pydantic import AfterValidator, BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_user
from ..core.errors import ValidationFailed
from ..models.account import Account
from ..services.accounts import get_or_create_account
from ..services.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT, Page


def _to_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_to_utc)]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: Optional[str] = None
    errors: Optional[list[str]] = None
    pagination: Optional[Pagination] = None


def ok(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(data=data, message=message)


def paged(page: Page, items: list, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(data=items, message=message, pagination=Pagination(**page.meta()))


class PageParams(BaseModel):
    page: int
    limit: int


def page_params(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def search_param(search: Optional[str] = Query(None, min_length=1, max_length=100)) -> Optional[str]:
    return search.strip() if search and search.strip() else None


def csv_enum(raw: Optional[str], enum_cls: type[Enum], field: str) -> list[str]:
    """'pending,completed' -> ['pending', 'completed'], rejecting unknown values."""
    if not raw:
        return []
    allowed = {e.value for e in enum_cls}
    values = [v.strip().lower() for v in raw.split(",") if v.strip()]
    invalid = [v for v in values if v not in allowed]
    if invalid:
        raise ValidationFailed([
            f"{field}: invalid value '{v}', expected one of {', '.join(sorted(allowed))}"
            for v in invalid
        ])
    return values


def csv_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [v.strip() for v in raw.split(",") if v.strip()]


async def current_account(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Account:
    return await get_or_create_account(db, user)
