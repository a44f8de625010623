"""
Accounts, plan ceilings and credits.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.errors import InsufficientCreditsError, PlanLimitError
from ..core.plans import Plan, get_plan_limits
from ..models.account import Account

logger = logging.getLogger(__name__)

# Human labels for limit errors
_RESOURCE_LABELS = {
    "max_conversations": "conversations",
    "max_files": "files",
    "max_memory_entries": "memory entries",
    "max_tasks_per_month": "tasks this month",
}


async def get_or_create_account(db: AsyncSession, user: AuthenticatedUser) -> Account:
    """Load the caller's account, creating a free-plan one on first use."""
    result = await db.execute(select(Account).where(Account.user_id == user.user_id))
    account = result.scalar_one_or_none()
    if account:
        return account

    limits = get_plan_limits(Plan.FREE.value)
    account = Account(
        user_id=user.user_id,
        email=user.email or None,
        name=user.name or None,
        plan=Plan.FREE.value,
        credits=limits.monthly_credits,
    )
    db.add(account)
    await db.flush()
    logger.info("Account created for %s (plan=%s)", user.user_id, account.plan)
    return account


def ensure_plan_allows(account: Account, resource: str, current_count: int) -> None:
    """Raise PlanLimitError when one more `resource` would exceed the plan."""
    if not account.limits.allows(resource, current_count):
        ceiling = getattr(account.limits, resource)
        label = _RESOURCE_LABELS.get(resource, resource)
        raise PlanLimitError(
            f"Plan limit reached: the {account.plan} plan allows {ceiling} {label}"
        )


def ensure_credits(account: Account, amount: int = 1) -> None:
    if account.credits < amount:
        raise InsufficientCreditsError("Insufficient credits")


def charge_credits(account: Account, amount: int = 1) -> None:
    if not account.deduct_credits(amount):
        raise InsufficientCreditsError("Insufficient credits")
    logger.debug("Charged %d credit(s) to %s, %d left", amount, account.user_id, account.credits)


async def update_profile(db: AsyncSession, account: Account, email: Optional[str], name: Optional[str]) -> Account:
    if email is not None:
        account.email = email
    if name is not None:
        account.name = name
    await db.flush()
    return account
