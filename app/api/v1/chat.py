"""
Chat API endpoints.

Manager/client conversations. Messages sent here are relayed to the
Socket.IO rooms the same way as messages sent over the socket.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import get_current_user
from app.middleware.security import limiter
from app.models import User
from app.services import chat_service

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ConversationCreate(BaseModel):
    """Managers name the client; client users leave it empty."""
    client_id: Optional[str] = None


class MessageCreate(BaseModel):
    content: Optional[str] = Field(default=None, max_length=5000)
    message_type: str = Field(default="TEXT", pattern="^(TEXT|FILE)$")
    attachment_url: Optional[str] = Field(default=None, max_length=1000)
    attachment_name: Optional[str] = Field(default=None, max_length=255)


class MarkReadRequest(BaseModel):
    message_ids: Optional[list[str]] = Field(default=None, max_length=500)


# =============================================================================
# Conversations
# =============================================================================

@router.get("/conversations")
async def list_conversations(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversations = await chat_service.list_conversations(db, current_user)
    return {"conversations": conversations, "total": len(conversations)}


@router.post("/conversations")
async def create_conversation(
    data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await chat_service.create_or_get_conversation(
        db, current_user, client_id=data.client_id
    )
    return chat_service.serialize_conversation(conversation)


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await chat_service.get_conversation(db, current_user, conversation_id)


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    before: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await chat_service.get_messages(
        db, current_user, conversation_id, page=page, limit=limit, before=before
    )


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def send_message(
    request: Request,
    conversation_id: str,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await chat_service.send_message(
        db,
        current_user,
        conversation_id,
        content=data.content,
        message_type=data.message_type,
        attachment_url=data.attachment_url,
        attachment_name=data.attachment_name,
    )


@router.post("/conversations/{conversation_id}/read")
async def mark_as_read(
    conversation_id: str,
    data: Optional[MarkReadRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await chat_service.mark_as_read(
        db, current_user, conversation_id, data.message_ids if data else None
    )
    return {"updated_count": updated}


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"unread_count": await chat_service.count_unread(db, current_user)}


@router.post("/upload", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def upload_attachment(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
):
    return await chat_service.save_attachment(file)
