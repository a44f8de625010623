"""
Subscription plan ceilings. -1 means unlimited.
"""

from dataclasses import dataclass
from enum import Enum

UNLIMITED = -1


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class PlanLimits:
    monthly_credits: int
    max_conversations: int
    max_files: int
    max_memory_entries: int
    max_tasks_per_month: int
    priority_support: bool
    advanced_features: bool

    def allows(self, resource: str, current_count: int) -> bool:
        """True if one more `resource` fits under the plan ceiling."""
        ceiling = getattr(self, resource)
        return ceiling == UNLIMITED or current_count < ceiling


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        monthly_credits=1000,
        max_conversations=10,
        max_files=50,
        max_memory_entries=100,
        max_tasks_per_month=50,
        priority_support=False,
        advanced_features=False,
    ),
    Plan.PRO: PlanLimits(
        monthly_credits=10000,
        max_conversations=100,
        max_files=500,
        max_memory_entries=1000,
        max_tasks_per_month=500,
        priority_support=True,
        advanced_features=True,
    ),
    Plan.ENTERPRISE: PlanLimits(
        monthly_credits=100000,
        max_conversations=UNLIMITED,
        max_files=UNLIMITED,
        max_memory_entries=UNLIMITED,
        max_tasks_per_month=UNLIMITED,
        priority_support=True,
        advanced_features=True,
    ),
}


def get_plan_limits(plan: str) -> PlanLimits:
    return PLAN_LIMITS[Plan(plan)]
