"""
Chat API.

POST   /v1/chat/message                  Send a message, get the assistant reply
GET    /v1/chat/conversations            List active conversations
GET    /v1/chat/conversations/{id}       Conversation with its messages
PUT    /v1/chat/conversations/{id}       Rename
DELETE /v1/chat/conversations/{id}       Deactivate
GET    /v1/chat/stats                    Conversation stats
"""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import ai_rate_limit, get_db, require_user
from ..models.account import Account
from ..models.conversation import ChatConversation
from ..services import conversations as conversation_service
from .common import ApiResponse, PageParams, current_account, ok, page_params, paged

logger = logging.getLogger(__name__)

chat_router = APIRouter(prefix="/chat", tags=["chat"])

MessageText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=4000)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]


class SendMessageRequest(BaseModel):
    message: MessageText
    conversation_id: Optional[str] = None


class RenameRequest(BaseModel):
    title: Title


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str
    content: str
    timestamp: datetime
    token_count: Optional[int] = None
    model: Optional[str] = None


class LastMessage(BaseModel):
    role: str
    content: str
    timestamp: datetime


class ConversationSummary(BaseModel):
    id: str
    title: str
    message_count: int
    last_message: Optional[LastMessage] = None
    created_at: datetime
    updated_at: datetime


class ConversationDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    is_active: bool
    message_count: int
    messages: list[MessageOut]
    created_at: datetime
    updated_at: datetime


def _summary(conversation: ChatConversation) -> ConversationSummary:
    return ConversationSummary(**conversation.summary())


@chat_router.post("/message", response_model=ApiResponse, dependencies=[Depends(ai_rate_limit)])
async def send_message(
    request: SendMessageRequest,
    account: Account = Depends(current_account),
    db: AsyncSession = Depends(get_db),
):
    """Send a message. Starts a new conversation when no id is given."""
    conversation, reply = await conversation_service.send_message(
        db, account, request.message, conversation_id=request.conversation_id
    )
    return ok(
        {
            "conversation_id": conversation.id,
            "message": MessageOut.model_validate(reply),
            "conversation": {
                "id": conversation.id,
                "title": conversation.title,
                "message_count": conversation.message_count,
            },
            "credits_remaining": account.credits,
        },
        message="Message sent successfully",
    )


@chat_router.get("/conversations", response_model=ApiResponse)
async def list_conversations(
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    page = await conversation_service.list_conversations(db, user.user_id, params.page, params.limit)
    return paged(page, [_summary(c) for c in page.items])


@chat_router.get("/conversations/{conversation_id}", response_model=ApiResponse)
async def get_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await conversation_service.get_conversation(db, user.user_id, conversation_id)
    return ok(ConversationDetail.model_validate(conversation))


@chat_router.put("/conversations/{conversation_id}", response_model=ApiResponse)
async def rename_conversation(
    conversation_id: str,
    request: RenameRequest,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await conversation_service.rename_conversation(
        db, user.user_id, conversation_id, request.title
    )
    return ok(_summary(conversation), message="Conversation updated successfully")


@chat_router.delete("/conversations/{conversation_id}", response_model=ApiResponse)
async def delete_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await conversation_service.deactivate_conversation(db, user.user_id, conversation_id)
    return ok(message="Conversation deleted successfully")


@chat_router.get("/stats", response_model=ApiResponse)
async def stats(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await conversation_service.conversation_stats(db, user.user_id))
