"""
The local account record of a user's plan and remaining credits.
Identity lives in the token; this row is created on first use.
"""

from sqlalchemy import String, Integer, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.plans import Plan, get_plan_limits
from .base import UserScopedBase


class Account(UserScopedBase):
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("user_id", name="uq_accounts_user_id"),)

    email: Mapped[str] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=True)
    plan: Mapped[str] = mapped_column(String, nullable=False, default=Plan.FREE.value)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def limits(self):
        return get_plan_limits(self.plan)

    def can_perform(self, action: str) -> bool:
        if action == "ai_request":
            return self.credits > 0
        if action == "advanced_features":
            return self.limits.advanced_features
        return True

    def deduct_credits(self, amount: int) -> bool:
        if self.credits < amount:
            return False
        self.credits -= amount
        return True
