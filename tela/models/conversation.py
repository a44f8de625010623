"""
Chat conversations and their messages.

Messages are append-only. Conversations are never hard-deleted: deleting one
flips is_active so history stays available for billing and stats.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import UserScopedBase, utcnow

DEFAULT_TITLE = "New Conversation"
TITLE_MAX_LENGTH = 50
SUMMARY_PREVIEW_LENGTH = 100


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def derive_title(content: str) -> str:
    """First 50 characters of the message, with an ellipsis when cut."""
    title = content[:TITLE_MAX_LENGTH]
    return f"{title}..." if len(title) < len(content) else title


class ChatConversation(UserScopedBase):
    __tablename__ = "chat_conversations"
    __table_args__ = (
        Index("ix_chat_conversations_user_created", "user_id", "created_at"),
        Index("ix_chat_conversations_user_active", "user_id", "is_active"),
    )

    title: Mapped[str] = mapped_column(String, nullable=False, default=DEFAULT_TITLE)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ChatMessage.sequence_number",
        lazy="selectin",
    )

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message(self) -> Optional["ChatMessage"]:
        return self.messages[-1] if self.messages else None

    def add_message(
        self,
        role: str,
        content: str,
        token_count: Optional[int] = None,
        model: Optional[str] = None,
    ) -> "ChatMessage":
        message = ChatMessage(
            user_id=self.user_id,
            role=role,
            content=content,
            token_count=token_count,
            model=model,
            sequence_number=len(self.messages),
            timestamp=utcnow(),
        )
        self.messages.append(message)

        # Title comes from the opening user message while it is still the default
        if self.title == DEFAULT_TITLE and role == MessageRole.USER.value and len(self.messages) <= 2:
            self.title = derive_title(content)

        # Appending a child does not dirty the parent row
        self.updated_at = utcnow()
        return message

    def summary(self) -> dict:
        last = self.last_message
        return {
            "id": self.id,
            "title": self.title,
            "message_count": self.message_count,
            "last_message": {
                "role": last.role,
                "content": last.content[:SUMMARY_PREVIEW_LENGTH],
                "timestamp": last.timestamp,
            } if last else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ChatMessage(UserScopedBase):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_timestamp", "timestamp"),
    )

    conversation_id: Mapped[str] = mapped_column(
        String, ForeignKey("chat_conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False)  # user, assistant, system
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=True)
    model: Mapped[str] = mapped_column(String, nullable=True)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    conversation: Mapped["ChatConversation"] = relationship(back_populates="messages")
