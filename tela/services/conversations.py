"""
Chat conversations: send a message, list, read, rename, deactivate, stats.
"""

import json
import logging
from typing import Optional

import httpx
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AppError, NotFoundError
from ..models.account import Account
from ..models.conversation import ChatConversation, ChatMessage, MessageRole, DEFAULT_TITLE
from ..models.memory import MemoryEntry
from . import llm, realtime
from .accounts import charge_credits, ensure_credits, ensure_plan_allows
from .memory import top_memories
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

MESSAGE_CREDIT_COST = 1
CONTEXT_MESSAGES = 10
CONTEXT_MEMORIES = 5

SYSTEM_PROMPT = (
    "You are Tela, an AI assistant. You are helpful, knowledgeable and personalized. "
    "Provide accurate, helpful responses."
)


def build_system_prompt(memories: list[MemoryEntry]) -> str:
    if not memories:
        return SYSTEM_PROMPT
    lines = [f"{m.key}: {json.dumps(m.value, default=str)}" for m in memories]
    return SYSTEM_PROMPT + "\n\nUser context (from memory):\n" + "\n".join(lines)


async def count_active_conversations(db: AsyncSession, user_id: str) -> int:
    return await db.scalar(
        select(func.count(ChatConversation.id)).where(
            ChatConversation.user_id == user_id,
            ChatConversation.is_active == True,  # noqa: E712
        )
    ) or 0


async def list_conversations(db: AsyncSession, user_id: str, page: int, limit: int) -> Page:
    stmt = (
        select(ChatConversation)
        .where(
            ChatConversation.user_id == user_id,
            ChatConversation.is_active == True,  # noqa: E712
        )
        .order_by(ChatConversation.updated_at.desc(), ChatConversation.id)
    )
    return await paginate(db, stmt, page, limit)


async def get_conversation(db: AsyncSession, user_id: str, conversation_id: str) -> ChatConversation:
    result = await db.execute(
        select(ChatConversation).where(
            ChatConversation.id == conversation_id,
            ChatConversation.user_id == user_id,
            ChatConversation.is_active == True,  # noqa: E712
        )
    )
    conversation = result.scalar_one_or_none()
    if not conversation:
        raise NotFoundError("Conversation not found")
    return conversation


async def send_message(
    db: AsyncSession,
    account: Account,
    content: str,
    conversation_id: Optional[str] = None,
) -> tuple[ChatConversation, ChatMessage]:
    """
    Append the user's message, ask the LLM for a reply, append that too and
    charge one credit. A new conversation is started when no id is given.
    """
    ensure_credits(account, MESSAGE_CREDIT_COST)
    user_id = account.user_id

    if conversation_id:
        conversation = await get_conversation(db, user_id, conversation_id)
    else:
        ensure_plan_allows(account, "max_conversations", await count_active_conversations(db, user_id))
        conversation = ChatConversation(user_id=user_id, title=DEFAULT_TITLE, messages=[])
        db.add(conversation)

    conversation.add_message(MessageRole.USER.value, content, token_count=llm.estimate_tokens(content))
    await db.flush()

    memories = await top_memories(db, user_id, limit=CONTEXT_MEMORIES)
    prompt = [{"role": "system", "content": build_system_prompt(memories)}]
    prompt += [{"role": m.role, "content": m.content} for m in conversation.messages[-CONTEXT_MESSAGES:]]

    try:
        completion = await llm.chat(prompt)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Assistant reply failed for conversation %s: %s", conversation.id, e)
        raise AppError("Failed to get a response from the assistant", status_code=502)

    reply = conversation.add_message(
        MessageRole.ASSISTANT.value,
        completion.content,
        token_count=completion.completion_tokens,
        model=completion.model,
    )
    charge_credits(account, MESSAGE_CREDIT_COST)
    await db.flush()

    logger.info(
        "Chat message processed (user=%s conversation=%s length=%d)",
        user_id, conversation.id, len(content),
    )
    realtime.conversation_updated(db, user_id, conversation.id, conversation.message_count)
    return conversation, reply


async def rename_conversation(db: AsyncSession, user_id: str, conversation_id: str, title: str) -> ChatConversation:
    conversation = await get_conversation(db, user_id, conversation_id)
    conversation.title = title
    await db.flush()
    return conversation


async def deactivate_conversation(db: AsyncSession, user_id: str, conversation_id: str) -> None:
    """Soft delete. The row and its messages stay."""
    conversation = await get_conversation(db, user_id, conversation_id)
    conversation.is_active = False
    await db.flush()
    logger.info("Conversation deactivated (user=%s conversation=%s)", user_id, conversation_id)


async def conversation_stats(db: AsyncSession, user_id: str) -> dict:
    total_conversations = await count_active_conversations(db, user_id)
    total_messages = await db.scalar(
        select(func.count(ChatMessage.id))
        .join(ChatConversation, ChatMessage.conversation_id == ChatConversation.id)
        .where(
            ChatConversation.user_id == user_id,
            ChatConversation.is_active == True,  # noqa: E712
        )
    ) or 0

    average = total_messages / total_conversations if total_conversations else 0
    return {
        "total_conversations": total_conversations,
        "total_messages": total_messages,
        "average_messages_per_conversation": round(average, 1),
    }
