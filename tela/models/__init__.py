"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import UserScopedBase
from .account import Account
from .conversation import ChatConversation, ChatMessage
from .task import Task
from .memory import MemoryEntry
from .design import DesignProject, DesignContent
from .file import UserFile

__all__ = [
    "UserScopedBase",
    "Account",
    "ChatConversation", "ChatMessage",
    "Task",
    "MemoryEntry",
    "DesignProject", "DesignContent",
    "UserFile",
]
