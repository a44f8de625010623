"""
Account API.

GET   /v1/account    Profile, plan, remaining credits and plan limits
PATCH /v1/account    Update e-mail / display name
"""

from dataclasses import asdict
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..models.account import Account
from ..services.accounts import update_profile
from .common import ApiResponse, current_account, ok

account_router = APIRouter(prefix="/account", tags=["account"])


class ProfileUpdate(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]] = None


class AccountOut(BaseModel):
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    plan: str
    credits: int
    is_active: bool
    limits: dict
    created_at: datetime


def _out(account: Account) -> AccountOut:
    return AccountOut(
        user_id=account.user_id,
        email=account.email,
        name=account.name,
        plan=account.plan,
        credits=account.credits,
        is_active=account.is_active,
        limits=asdict(account.limits),
        created_at=account.created_at,
    )


@account_router.get("", response_model=ApiResponse)
async def get_account(account: Account = Depends(current_account)):
    return ok(_out(account))


@account_router.patch("", response_model=ApiResponse)
async def patch_account(
    request: ProfileUpdate,
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
):
    account = await update_profile(db, account, email=request.email, name=request.name)
    return ok(_out(account), message="Profile updated successfully")
