"""
Realtime notifications. Thin wrapper around core.redis.
Provides typed event helpers for the parts of the system clients watch.

Events are queued on the session and published only after it commits, so
a rolled-back request never announces a change.
"""

from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import redis as _redis
from ..core.database import after_commit


def _notify(db: AsyncSession, user_id: str, event_type: str, data: dict) -> None:
    after_commit(db, partial(_redis.notify_user, user_id, event_type, data))


# ── Design events ────────────────────────────────────────────────────

def design_status_changed(db: AsyncSession, user_id: str, project_id: str, status: str) -> None:
    _notify(db, user_id, "design.status", {"project_id": project_id, "status": status})


# ── File events ──────────────────────────────────────────────────────

def file_uploaded(db: AsyncSession, user_id: str, file_id: str, category: str) -> None:
    _notify(db, user_id, "file.uploaded", {"file_id": file_id, "category": category})


# ── Chat events ──────────────────────────────────────────────────────

def conversation_updated(db: AsyncSession, user_id: str, conversation_id: str, message_count: int) -> None:
    _notify(
        db,
        user_id,
        "chat.updated",
        {"conversation_id": conversation_id, "message_count": message_count},
    )
