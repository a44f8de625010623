"""
Memory entries: upsert by (key, type), filtered listing, access bookkeeping,
stats and the expiry sweep.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import String, and_, cast, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import json_serializer
from ..core.errors import ConflictError, NotFoundError, ValidationFailed
from ..models.account import Account
from ..models.base import utcnow
from ..models.memory import MemoryEntry, HIGH_IMPORTANCE, DEFAULT_IMPORTANCE, normalize_tags
from .accounts import ensure_plan_allows
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

TOP_TAGS = 10

_UPDATABLE = ("type", "key", "value", "description", "importance", "tags", "expires_at")


@dataclass
class MemoryFilters:
    types: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    importance_min: Optional[int] = None
    importance_max: Optional[int] = None
    search: Optional[str] = None


def _tags_text():
    # Tags are a JSON array; match on the serialized form so the filter
    # works on every backend.
    return cast(MemoryEntry.tags, String)


def _as_json_fragment(text: str) -> str:
    """`text` the way it appears inside the stored JSON, without the quotes."""
    return json_serializer(text)[1:-1]


def _live(user_id: str):
    """Owned by the user and not past its expiry."""
    return and_(
        MemoryEntry.user_id == user_id,
        or_(MemoryEntry.expires_at.is_(None), MemoryEntry.expires_at > utcnow()),
    )


def _search_clause(term: str):
    return or_(
        MemoryEntry.key.icontains(term, autoescape=True),
        MemoryEntry.description.icontains(term, autoescape=True),
        _tags_text().icontains(_as_json_fragment(term), autoescape=True),
    )


def _ordered(stmt):
    return stmt.order_by(
        MemoryEntry.importance.desc(),
        MemoryEntry.updated_at.desc(),
        MemoryEntry.id,
    )


async def count_memories(db: AsyncSession, user_id: str) -> int:
    return await db.scalar(select(func.count(MemoryEntry.id)).where(_live(user_id))) or 0


async def list_memories(
    db: AsyncSession,
    user_id: str,
    filters: MemoryFilters,
    page: int,
    limit: int,
) -> Page:
    conditions = [_live(user_id)]

    if filters.types:
        conditions.append(MemoryEntry.type.in_(filters.types))

    if filters.tags:
        conditions.append(or_(*[
            _tags_text().contains(f'"{_as_json_fragment(tag)}"', autoescape=True)
            for tag in normalize_tags(filters.tags)
        ]))

    if filters.importance_min is not None:
        conditions.append(MemoryEntry.importance >= filters.importance_min)
    if filters.importance_max is not None:
        conditions.append(MemoryEntry.importance <= filters.importance_max)

    if filters.search:
        conditions.append(_search_clause(filters.search))

    stmt = _ordered(select(MemoryEntry).where(*conditions))
    return await paginate(db, stmt, page, limit)


async def top_memories(db: AsyncSession, user_id: str, limit: int = 10) -> list[MemoryEntry]:
    result = await db.execute(_ordered(select(MemoryEntry).where(_live(user_id))).limit(limit))
    return list(result.scalars().all())


async def find_by_key(
    db: AsyncSession, user_id: str, key: str, type: Optional[str] = None
) -> Optional[MemoryEntry]:
    conditions = [_live(user_id), MemoryEntry.key == key.strip()]
    if type:
        conditions.append(MemoryEntry.type == type)
    result = await db.execute(_ordered(select(MemoryEntry).where(*conditions)).limit(1))
    return result.scalar_one_or_none()


async def _find_any(db: AsyncSession, user_id: str, key: str, type: str) -> Optional[MemoryEntry]:
    """Lookup by the unique triple, expired rows included."""
    result = await db.execute(
        select(MemoryEntry).where(
            MemoryEntry.user_id == user_id,
            MemoryEntry.key == key,
            MemoryEntry.type == type,
        )
    )
    return result.scalar_one_or_none()


async def get_memory(db: AsyncSession, user_id: str, memory_id: str, record_access: bool = True) -> MemoryEntry:
    result = await db.execute(
        select(MemoryEntry).where(MemoryEntry.id == memory_id, _live(user_id))
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFoundError("Memory entry not found")
    if record_access:
        entry.record_access()
        await db.flush()
    return entry


async def create_memory(
    db: AsyncSession,
    account: Account,
    *,
    type: str,
    key: str,
    value: Any,
    description: Optional[str] = None,
    importance: int = DEFAULT_IMPORTANCE,
    tags: Optional[list[str]] = None,
    expires_at: Optional[datetime] = None,
) -> MemoryEntry:
    user_id = account.user_id
    key = key.strip()

    existing = await _find_any(db, user_id, key, type)
    if existing and not existing.is_expired:
        raise ConflictError(f"Memory entry '{key}' of type '{type}' already exists")
    if existing:
        # An expired row still holds the unique slot until the sweeper runs
        await db.delete(existing)
        await db.flush()

    ensure_plan_allows(account, "max_memory_entries", await count_memories(db, user_id))

    entry = MemoryEntry(
        user_id=user_id,
        type=type,
        key=key,
        value=value,
        description=description,
        tags=normalize_tags(tags or []),
        expires_at=expires_at,
    )
    entry.set_importance(importance)
    db.add(entry)
    await db.flush()

    logger.info("Memory created (user=%s key=%s type=%s)", user_id, key, type)
    return entry


async def upsert_memory(
    db: AsyncSession,
    account: Account,
    *,
    type: str,
    key: str,
    value: Any,
    description: Optional[str] = None,
    importance: Optional[int] = None,
    tags: Optional[list[str]] = None,
    expires_at: Optional[datetime] = None,
) -> tuple[MemoryEntry, bool]:
    """Create or overwrite by (key, type). Returns (entry, created)."""
    existing = await _find_any(db, account.user_id, key.strip(), type)
    if existing is None or existing.is_expired:
        entry = await create_memory(
            db, account,
            type=type, key=key, value=value, description=description,
            importance=importance if importance is not None else DEFAULT_IMPORTANCE,
            tags=tags, expires_at=expires_at,
        )
        return entry, True

    existing.value = value
    if description is not None:
        existing.description = description
    if importance is not None:
        existing.set_importance(importance)
    if tags is not None:
        existing.tags = normalize_tags(tags)
    existing.expires_at = expires_at
    await db.flush()

    logger.info("Memory updated by key (user=%s key=%s type=%s)", account.user_id, existing.key, type)
    return existing, False


async def update_memory(db: AsyncSession, user_id: str, memory_id: str, changes: dict) -> MemoryEntry:
    entry = await get_memory(db, user_id, memory_id, record_access=False)

    new_key = (changes.get("key") or entry.key).strip()
    new_type = changes.get("type") or entry.type
    if (new_key, new_type) != (entry.key, entry.type):
        clash = await _find_any(db, user_id, new_key, new_type)
        if clash and clash.id != entry.id:
            if not clash.is_expired:
                raise ConflictError(f"Memory entry '{new_key}' of type '{new_type}' already exists")
            await db.delete(clash)
            await db.flush()

    for name in _UPDATABLE:
        if name not in changes:
            continue
        value = changes[name]
        if name == "importance":
            try:
                entry.set_importance(value)
            except ValueError as e:
                raise ValidationFailed([f"importance: {e}"])
        elif name == "tags":
            entry.tags = normalize_tags(value or [])
        elif name == "key":
            entry.key = new_key
        else:
            setattr(entry, name, value)

    await db.flush()
    return entry


async def add_tags(db: AsyncSession, user_id: str, memory_id: str, tags: list[str]) -> MemoryEntry:
    entry = await get_memory(db, user_id, memory_id, record_access=False)
    entry.add_tags(tags)
    await db.flush()
    return entry


async def remove_tags(db: AsyncSession, user_id: str, memory_id: str, tags: list[str]) -> MemoryEntry:
    entry = await get_memory(db, user_id, memory_id, record_access=False)
    entry.remove_tags(tags)
    await db.flush()
    return entry


async def delete_memory(db: AsyncSession, user_id: str, memory_id: str) -> None:
    entry = await get_memory(db, user_id, memory_id, record_access=False)
    await db.delete(entry)
    await db.flush()


async def memory_stats(db: AsyncSession, user_id: str) -> dict:
    rows = await db.execute(
        select(MemoryEntry.type, func.count(MemoryEntry.id), func.avg(MemoryEntry.importance))
        .where(_live(user_id))
        .group_by(MemoryEntry.type)
    )
    by_type = {
        type_: {"count": count, "avg_importance": round(float(avg or 0), 1)}
        for type_, count, avg in rows.all()
    }

    high_importance = await db.scalar(
        select(func.count(MemoryEntry.id)).where(_live(user_id), MemoryEntry.importance >= HIGH_IMPORTANCE)
    ) or 0

    tag_counts: Counter = Counter()
    for tags in (await db.execute(select(MemoryEntry.tags).where(_live(user_id)))).scalars():
        tag_counts.update(tags or [])
    top_tags = sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_TAGS]

    return {
        "total": sum(t["count"] for t in by_type.values()),
        "by_type": by_type,
        "high_importance": high_importance,
        "top_tags": [{"name": name, "count": count} for name, count in top_tags],
    }


async def cleanup_expired_memories(db: AsyncSession) -> int:
    """Delete every entry past its expiry, across all users."""
    result = await db.execute(
        delete(MemoryEntry)
        .where(MemoryEntry.expires_at < utcnow())
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    logger.info("Expired memory entries removed: %d", deleted)
    return deleted
