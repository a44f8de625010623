"""
Task model with priority, category and due-date tracking.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import UserScopedBase, as_utc, utcnow


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskCategory(str, Enum):
    CODING = "coding"
    DESIGN = "design"
    ANALYSIS = "analysis"
    WRITING = "writing"
    OTHER = "other"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Sort rank, highest first
PRIORITY_RANK = {
    TaskPriority.URGENT.value: 4,
    TaskPriority.HIGH.value: 3,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.LOW.value: 1,
}

CLOSED_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value)


class Task(UserScopedBase):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_status", "user_id", "status"),
        Index("ix_tasks_user_category", "user_id", "category"),
        Index("ix_tasks_user_priority", "user_id", "priority"),
        Index("ix_tasks_user_due_date", "user_id", "due_date"),
        Index("ix_tasks_user_created", "user_id", "created_at"),
        Index("ix_tasks_due_date_status", "due_date", "status"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False, default=TaskCategory.OTHER.value)
    priority: Mapped[str] = mapped_column(String, nullable=False, default=TaskPriority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String, nullable=False, default=TaskStatus.PENDING.value)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title[:30]}', status={self.status})>"

    @property
    def is_overdue(self) -> bool:
        if not self.due_date or self.status in CLOSED_STATUSES:
            return False
        return as_utc(self.due_date) < utcnow()

    @property
    def days_until_due(self) -> Optional[int]:
        if not self.due_date:
            return None
        delta = as_utc(self.due_date) - utcnow()
        return math.ceil(delta.total_seconds() / 86400)

    def mark_completed(self) -> None:
        self.status = TaskStatus.COMPLETED.value
