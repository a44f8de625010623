"""
Memory entries: persistent facts about a user, keyed by (key, type).

Values are opaque JSON. Importance is an integer in [1, 10]. Entries may
carry an expiry; expired rows are hidden from reads and removed by the
maintenance sweeper.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import String, Text, Integer, DateTime, JSON, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import UserScopedBase, as_utc, utcnow

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10
DEFAULT_IMPORTANCE = 5
HIGH_IMPORTANCE = 8


class MemoryType(str, Enum):
    PREFERENCE = "preference"
    CONTEXT = "context"
    SKILL = "skill"
    PROJECT = "project"
    NOTE = "note"


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Lowercase, trim, drop blanks and duplicates. Keeps first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        cleaned = tag.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class MemoryEntry(UserScopedBase):
    __tablename__ = "memory_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "key", "type", name="uq_memory_entries_user_key_type"),
        CheckConstraint(
            f"importance >= {MIN_IMPORTANCE} AND importance <= {MAX_IMPORTANCE}",
            name="ck_memory_entries_importance_range",
        ),
        Index("ix_memory_entries_user_type", "user_id", "type"),
        Index("ix_memory_entries_user_key", "user_id", "key"),
        Index("ix_memory_entries_user_importance", "user_id", "importance"),
        Index("ix_memory_entries_expires_at", "expires_at"),
    )

    type: Mapped[str] = mapped_column(String, nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    importance: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_IMPORTANCE)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) < utcnow()

    def set_importance(self, importance: int) -> None:
        if not MIN_IMPORTANCE <= importance <= MAX_IMPORTANCE:
            raise ValueError(f"Importance must be between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}")
        self.importance = importance

    def add_tags(self, new_tags: Iterable[str]) -> None:
        # Reassign so the JSON column is flagged dirty
        self.tags = normalize_tags([*(self.tags or []), *new_tags])

    def remove_tags(self, tags_to_remove: Iterable[str]) -> None:
        drop = set(normalize_tags(tags_to_remove))
        self.tags = [t for t in (self.tags or []) if t not in drop]

    def record_access(self) -> None:
        self.access_count = (self.access_count or 0) + 1
        self.last_accessed_at = utcnow()
