"""
Design projects and the content generated for them.

Lifecycle: created as "generating", then completed or failed. A failed
project can be put back into "generating" for a retry.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import UserScopedBase, as_utc, utcnow

STUCK_ERROR_NOTE = "Generation timeout - project was stuck in generating state"


class DesignType(str, Enum):
    UI = "ui"
    LOGO = "logo"
    BANNER = "banner"
    ILLUSTRATION = "illustration"
    OTHER = "other"


class DesignStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentType(str, Enum):
    IMAGE = "image"
    CODE = "code"
    TEXT = "text"


ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    DesignStatus.GENERATING.value: {DesignStatus.COMPLETED.value, DesignStatus.FAILED.value},
    DesignStatus.FAILED.value: {DesignStatus.GENERATING.value},
    DesignStatus.COMPLETED.value: set(),
}


class DesignProject(UserScopedBase):
    __tablename__ = "design_projects"
    __table_args__ = (
        Index("ix_design_projects_user_status", "user_id", "status"),
        Index("ix_design_projects_user_type", "user_id", "type"),
        Index("ix_design_projects_user_created", "user_id", "created_at"),
        Index("ix_design_projects_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String, nullable=False, default=DesignType.OTHER.value)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=DesignStatus.GENERATING.value)
    brand_colors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    # error, model, seed, etc.

    contents: Mapped[list["DesignContent"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="DesignContent.timestamp",
        lazy="selectin",
    )

    @property
    def content_count(self) -> int:
        return len(self.contents)

    @property
    def latest_content(self) -> Optional["DesignContent"]:
        return self.contents[-1] if self.contents else None

    @property
    def generation_duration(self) -> Optional[float]:
        """Seconds from creation to the last update, once completed."""
        if self.status != DesignStatus.COMPLETED.value:
            return None
        return (as_utc(self.updated_at) - as_utc(self.created_at)).total_seconds()

    def can_transition_to(self, status: str) -> bool:
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def add_content(self, type: str, content: str, url: Optional[str] = None, metadata: Optional[dict] = None) -> "DesignContent":
        item = DesignContent(
            user_id=self.user_id,
            type=type,
            content=content,
            url=url,
            metadata_=metadata or {},
            timestamp=utcnow(),
        )
        self.contents.append(item)
        self.updated_at = utcnow()
        return item

    def mark_failed(self, error: Optional[str] = None) -> None:
        self.status = DesignStatus.FAILED.value
        if error:
            self.metadata_ = {**(self.metadata_ or {}), "error": error}


class DesignContent(UserScopedBase):
    __tablename__ = "design_contents"

    project_id: Mapped[str] = mapped_column(
        String, ForeignKey("design_projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String, nullable=False)  # image, code, text
    content: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    project: Mapped["DesignProject"] = relationship(back_populates="contents")
