"""
Chat Service

Conversations between a manager and each of their clients:
- One conversation per manager/client pair, created on first use
- Paginated message history with a `before` cursor
- Read receipts and unread counters
- Alert messages posted by the alert dispatcher
- Attachment uploads
"""

import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import structlog
from fastapi import UploadFile
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app import realtime
from app.config import settings
from app.core.exceptions import AppError, NotFoundError, PermissionDeniedError
from app.models import Alert, ChatConversation, ChatMessage, Client, USER_MESSAGE_TYPES, User
from app.services.client_service import client_scope_condition, get_client_for_user

logger = structlog.get_logger()


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


def serialize_message(message: ChatMessage, sender: Optional[User] = None) -> dict[str, Any]:
    sender = sender or message.sender
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "sender": {"id": sender.id, "name": sender.name, "role": sender.role} if sender else None,
        "content": message.content,
        "message_type": message.message_type,
        "attachment_url": message.attachment_url,
        "attachment_name": message.attachment_name,
        "data": message.data or {},
        "is_read": message.is_read,
        "read_at": message.read_at.isoformat() if message.read_at else None,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


def serialize_conversation(conversation: ChatConversation) -> dict[str, Any]:
    client = conversation.client
    manager = conversation.manager
    return {
        "id": conversation.id,
        "manager": {"id": manager.id, "name": manager.name, "email": manager.email},
        "client": {
            "id": client.id,
            "name": client.name,
            "company": client.company,
            "email": client.email,
            "user_id": client.user_id,
        },
        "last_message_at": (
            conversation.last_message_at.isoformat() if conversation.last_message_at else None
        ),
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
    }


# =============================================================================
# Conversations
# =============================================================================

def _conversation_query():
    return select(ChatConversation).options(
        selectinload(ChatConversation.client),
        selectinload(ChatConversation.manager),
    )


def _user_in_conversation(user: User, conversation: ChatConversation) -> bool:
    if user.is_manager:
        return conversation.manager_id == user.id
    return conversation.client.is_linked_to(user)


async def get_conversation_for_user(
    db: AsyncSession, user: User, conversation_id: str
) -> ChatConversation:
    """
    Raises:
        NotFoundError: Unknown conversation
        PermissionDeniedError: The user is not a participant
    """
    result = await db.execute(_conversation_query().where(ChatConversation.id == conversation_id))
    conversation = result.scalar_one_or_none()
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not _user_in_conversation(user, conversation):
        raise PermissionDeniedError("You do not have access to this conversation")
    return conversation


async def _get_or_create(db: AsyncSession, manager_id: str, client_id: str) -> ChatConversation:
    query = _conversation_query().where(
        ChatConversation.manager_id == manager_id,
        ChatConversation.client_id == client_id,
    )
    conversation = (await db.execute(query)).scalar_one_or_none()
    if conversation:
        return conversation

    db.add(ChatConversation(manager_id=manager_id, client_id=client_id))
    await db.flush()
    logger.info("conversation_created", manager_id=manager_id, client_id=client_id)
    return (await db.execute(query)).scalar_one()


async def create_or_get_conversation(
    db: AsyncSession, user: User, client_id: Optional[str] = None
) -> ChatConversation:
    """
    Conversation between a manager and a client.

    Managers name the client; a client user gets the conversation with
    their own manager.
    """
    if user.is_manager:
        if not client_id:
            raise AppError("client_id is required")
        result = await db.execute(
            select(Client).where(Client.id == client_id, Client.manager_id == user.id)
        )
        client = result.scalar_one_or_none()
    else:
        client = await get_client_for_user(db, user)

    if client is None:
        raise NotFoundError("Client not found")

    conversation = await _get_or_create(db, client.manager_id, client.id)
    await db.commit()
    return conversation


async def list_conversations(db: AsyncSession, user: User) -> list[dict[str, Any]]:
    """The user's conversations, most recently active first."""
    if user.is_manager:
        condition = ChatConversation.manager_id == user.id
    else:
        client_ids = select(Client.id).where(client_scope_condition(user))
        condition = ChatConversation.client_id.in_(client_ids)

    result = await db.execute(
        _conversation_query()
        .where(condition)
        .order_by(ChatConversation.last_message_at.desc().nullslast(), ChatConversation.created_at.desc())
    )
    conversations = list(result.scalars().all())
    if not conversations:
        return []

    ids = [c.id for c in conversations]
    unread_rows = await db.execute(
        select(ChatMessage.conversation_id, func.count(ChatMessage.id))
        .where(
            ChatMessage.conversation_id.in_(ids),
            ChatMessage.sender_id != user.id,
            ChatMessage.is_read.is_(False),
        )
        .group_by(ChatMessage.conversation_id)
    )
    unread = dict(unread_rows.all())

    items = []
    for conversation in conversations:
        last = (
            await db.execute(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation.id)
                .order_by(ChatMessage.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        if user.is_manager:
            participant = conversation.client
            participant_user_id = participant.user_id
            participant_info = {
                "id": participant.id,
                "name": participant.name,
                "company": participant.company,
                "email": participant.email,
            }
        else:
            participant = conversation.manager
            participant_user_id = participant.id
            participant_info = {
                "id": participant.id,
                "name": participant.name,
                "company": participant.company,
                "email": participant.email,
            }

        items.append({
            **serialize_conversation(conversation),
            "participant": participant_info,
            "last_message": last.content if last else None,
            "unread_count": unread.get(conversation.id, 0),
            "is_online": bool(participant_user_id) and realtime.is_user_online(participant_user_id),
        })
    return items


async def get_conversation(db: AsyncSession, user: User, conversation_id: str) -> dict[str, Any]:
    """One conversation with the number of messages the user has not read."""
    conversation = await get_conversation_for_user(db, user, conversation_id)
    unread = await db.scalar(
        select(func.count(ChatMessage.id)).where(
            ChatMessage.conversation_id == conversation.id,
            ChatMessage.sender_id != user.id,
            ChatMessage.is_read.is_(False),
        )
    )
    return {**serialize_conversation(conversation), "unread_count": unread or 0}


# =============================================================================
# Messages
# =============================================================================

async def get_messages(
    db: AsyncSession,
    user: User,
    conversation_id: str,
    page: int = 1,
    limit: int = 50,
    before: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    A page of messages in ascending order.

    With `before`, returns the `limit` messages preceding that instant.
    """
    conversation = await get_conversation_for_user(db, user, conversation_id)

    conditions = [ChatMessage.conversation_id == conversation.id]
    if before:
        conditions.append(ChatMessage.created_at < before)

    result = await db.execute(
        select(ChatMessage)
        .options(selectinload(ChatMessage.sender))
        .where(and_(*conditions))
        .order_by(ChatMessage.created_at.desc())
        .offset(0 if before else (page - 1) * limit)
        .limit(limit + 1)
    )
    messages = list(result.scalars().all())
    has_more = len(messages) > limit
    messages = messages[:limit]
    messages.reverse()

    total = (
        await db.execute(
            select(func.count(ChatMessage.id)).where(ChatMessage.conversation_id == conversation.id)
        )
    ).scalar() or 0

    return {
        "conversation": serialize_conversation(conversation),
        "messages": [serialize_message(m) for m in messages],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "has_more": has_more,
        },
    }


async def send_message(
    db: AsyncSession,
    user: User,
    conversation_id: str,
    content: Optional[str] = None,
    message_type: str = "TEXT",
    attachment_url: Optional[str] = None,
    attachment_name: Optional[str] = None,
    data: Optional[dict] = None,
) -> dict[str, Any]:
    """
    Post a message and relay it to the conversation room.

    Returns:
        Serialized message
    """
    if message_type not in USER_MESSAGE_TYPES:
        raise AppError(f"Invalid message type: {message_type}")
    if not (content and content.strip()) and not attachment_url:
        raise AppError("Message content or attachment is required")

    conversation = await get_conversation_for_user(db, user, conversation_id)

    if attachment_url and not content and message_type == "TEXT":
        message_type = "FILE"

    message = ChatMessage(
        conversation_id=conversation.id,
        sender_id=user.id,
        content=content.strip() if content else "",
        message_type=message_type,
        attachment_url=attachment_url,
        attachment_name=attachment_name,
        data=data or {},
    )
    db.add(message)
    conversation.last_message_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(message)

    payload = serialize_message(message, sender=user)
    await realtime.emit_to_conversation(conversation.id, "new_message", payload)

    recipient_id = conversation.client.user_id if user.is_manager else conversation.manager_id
    if recipient_id and recipient_id != user.id:
        await realtime.emit_to_user(
            recipient_id,
            "new_message_notification",
            {
                "conversation_id": conversation.id,
                "sender_name": user.name,
                "preview": (message.content or message.attachment_name or "")[:100],
            },
        )

    logger.info(
        "chat_message_sent",
        conversation_id=conversation.id,
        sender_id=user.id,
        message_type=message.message_type,
    )
    return payload


async def mark_as_read(
    db: AsyncSession,
    user: User,
    conversation_id: str,
    message_ids: Optional[list[str]] = None,
) -> int:
    """
    Mark messages from the other participant as read.

    Returns:
        Number of messages updated
    """
    conversation = await get_conversation_for_user(db, user, conversation_id)

    conditions = [
        ChatMessage.conversation_id == conversation.id,
        ChatMessage.sender_id != user.id,
        ChatMessage.is_read.is_(False),
    ]
    if message_ids:
        conditions.append(ChatMessage.id.in_(message_ids))

    result = await db.execute(
        update(ChatMessage)
        .where(*conditions)
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def count_unread(db: AsyncSession, user: User) -> int:
    """Unread messages sent to the user across all conversations."""
    if user.is_manager:
        conversation_ids = select(ChatConversation.id).where(ChatConversation.manager_id == user.id)
    else:
        conversation_ids = (
            select(ChatConversation.id)
            .join(Client, ChatConversation.client_id == Client.id)
            .where(client_scope_condition(user))
        )

    result = await db.execute(
        select(func.count(ChatMessage.id)).where(
            ChatMessage.conversation_id.in_(conversation_ids),
            ChatMessage.sender_id != user.id,
            ChatMessage.is_read.is_(False),
        )
    )
    return result.scalar() or 0


async def post_alert_message(
    db: AsyncSession, alert: Alert, client: Client
) -> Optional[ChatMessage]:
    """
    Post an alert into the manager/client conversation.

    The manager is the sender. Flushes only; the caller commits.
    """
    if not client.manager_id:
        return None

    conversation = await _get_or_create(db, client.manager_id, client.id)
    message = ChatMessage(
        conversation_id=conversation.id,
        sender_id=alert.user_id,
        content=f"🚨 **ALERTA: {alert.title}**\n\n{alert.message}",
        message_type="ALERT",
        data={"alert_id": alert.id, "priority": alert.priority, "alert_type": alert.alert_type},
    )
    db.add(message)
    conversation.last_message_at = datetime.now(timezone.utc)
    await db.flush()

    await realtime.emit_to_conversation(
        conversation.id,
        "new_message",
        {
            "id": message.id,
            "conversation_id": conversation.id,
            "sender_id": message.sender_id,
            "content": message.content,
            "message_type": "ALERT",
            "alert": {
                "id": alert.id,
                "title": alert.title,
                "message": alert.message,
                "priority": alert.priority,
            },
        },
    )
    return message


# =============================================================================
# Attachments
# =============================================================================

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
UPLOAD_CHUNK_SIZE = 1024 * 1024


async def save_attachment(file: UploadFile) -> dict[str, Any]:
    """
    Stream an uploaded attachment to the upload directory in chunks.

    Returns:
        URL, original name, content type and size
    """
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    original = file.filename or "attachment"
    stored_name = f"{uuid4().hex}_{_UNSAFE_CHARS.sub('_', Path(original).name)}"
    target_dir = Path(settings.upload_dir) / "chat"
    target = target_dir / stored_name

    await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)
    out = await asyncio.to_thread(target.open, "wb")
    size = 0
    try:
        while True:
            chunk = await file.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise AppError(
                    f"File exceeds the {settings.max_upload_size_mb} MB limit",
                    status_code=413,
                    error="payload_too_large",
                )
            await asyncio.to_thread(out.write, chunk)
        if not size:
            raise AppError("Uploaded file is empty")
    except AppError:
        await asyncio.to_thread(out.close)
        await asyncio.to_thread(target.unlink, missing_ok=True)
        raise
    await asyncio.to_thread(out.close)

    logger.info("chat_attachment_saved", name=original, size=size)
    return {
        "url": f"/uploads/chat/{stored_name}",
        "name": original,
        "content_type": file.content_type,
        "size": size,
    }
