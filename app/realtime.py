"""
Socket.IO relay for chat and alerts.

Every connection is authenticated with an access token and joins the
`user_<id>` room; conversation rooms are `conversation_<id>`. Online
presence is tracked per process.
"""

from typing import Any, Optional
from urllib.parse import parse_qs

import socketio
import structlog
from socketio.exceptions import ConnectionRefusedError as SocketConnectionRefused

from app.config import settings
from app.core.database import get_db_context
from app.core.exceptions import AppError
from app.middleware.auth import get_user_from_token
from app.models import User
from app.services import chat_service

logger = structlog.get_logger()

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins or [],
    logger=False,
    engineio_logger=False,
)

# user_id -> connected socket ids
_online_users: dict[str, set[str]] = {}


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


# =============================================================================
# Helpers used by services
# =============================================================================

async def emit_to_user(user_id: str, event: str, data: Any) -> None:
    await sio.emit(event, data, room=user_room(user_id))


async def emit_to_conversation(
    conversation_id: str, event: str, data: Any, skip_sid: Optional[str] = None
) -> None:
    await sio.emit(
        event,
        data,
        room=chat_service.conversation_room(conversation_id),
        skip_sid=skip_sid,
    )


async def broadcast_alert(user_ids: list[str], alert: dict) -> None:
    for user_id in user_ids:
        await emit_to_user(user_id, "new_alert", alert)


def is_user_online(user_id: str) -> bool:
    return bool(_online_users.get(user_id))


def get_online_users() -> list[str]:
    return [user_id for user_id, sids in _online_users.items() if sids]


def _extract_token(environ: dict, auth: Optional[dict]) -> Optional[str]:
    if auth and auth.get("token"):
        return auth["token"]
    query = parse_qs(environ.get("QUERY_STRING", ""))
    tokens = query.get("token")
    return tokens[0] if tokens else None


# =============================================================================
# Connection lifecycle
# =============================================================================

@sio.event
async def connect(sid: str, environ: dict, auth: Optional[dict] = None):
    token = _extract_token(environ, auth)
    if not token:
        raise SocketConnectionRefused("Authentication token not provided")

    async with get_db_context() as db:
        user = await get_user_from_token(db, token)
    if user is None:
        logger.warning("socket_auth_failed", sid=sid)
        raise SocketConnectionRefused("Invalid or expired token")

    await sio.save_session(sid, {"user_id": user.id, "name": user.name, "role": user.role})
    await sio.enter_room(sid, user_room(user.id))

    first_connection = not is_user_online(user.id)
    _online_users.setdefault(user.id, set()).add(sid)
    if first_connection:
        await sio.emit("user_online", {"user_id": user.id}, skip_sid=sid)

    logger.info("socket_connected", sid=sid, user_id=user.id)


@sio.event
async def disconnect(sid: str):
    session = await sio.get_session(sid)
    user_id = session.get("user_id")
    if not user_id:
        return

    sids = _online_users.get(user_id, set())
    sids.discard(sid)
    if not sids:
        _online_users.pop(user_id, None)
        await sio.emit("user_offline", {"user_id": user_id})

    logger.info("socket_disconnected", sid=sid, user_id=user_id)


# =============================================================================
# Chat events
# =============================================================================

async def _session_user(db, sid: str):
    session = await sio.get_session(sid)
    return await db.get(User, session["user_id"])


@sio.event
async def join_conversation(sid: str, data: dict):
    conversation_id = (data or {}).get("conversation_id")
    try:
        async with get_db_context() as db:
            user = await _session_user(db, sid)
            await chat_service.get_conversation_for_user(db, user, conversation_id)
    except AppError as e:
        await sio.emit("error", {"event": "join_conversation", "message": e.message}, to=sid)
        return

    await sio.enter_room(sid, chat_service.conversation_room(conversation_id))
    await sio.emit("joined_conversation", {"conversation_id": conversation_id}, to=sid)


@sio.event
async def leave_conversation(sid: str, data: dict):
    conversation_id = (data or {}).get("conversation_id")
    if conversation_id:
        await sio.leave_room(sid, chat_service.conversation_room(conversation_id))


@sio.event
async def send_message(sid: str, data: dict):
    data = data or {}
    try:
        async with get_db_context() as db:
            user = await _session_user(db, sid)
            message = await chat_service.send_message(
                db,
                user,
                data.get("conversation_id"),
                content=data.get("content"),
                message_type=data.get("message_type") or "TEXT",
                attachment_url=data.get("attachment_url"),
                attachment_name=data.get("attachment_name"),
            )
    except AppError as e:
        await sio.emit("error", {"event": "send_message", "message": e.message}, to=sid)
        return

    await sio.emit(
        "message_sent",
        {"temp_id": data.get("temp_id"), "message": message},
        to=sid,
    )


@sio.event
async def mark_as_read(sid: str, data: dict):
    data = data or {}
    conversation_id = data.get("conversation_id")
    try:
        async with get_db_context() as db:
            user = await _session_user(db, sid)
            updated = await chat_service.mark_as_read(
                db, user, conversation_id, data.get("message_ids")
            )
    except AppError as e:
        await sio.emit("error", {"event": "mark_as_read", "message": e.message}, to=sid)
        return

    await emit_to_conversation(
        conversation_id,
        "messages_read",
        {"conversation_id": conversation_id, "user_id": user.id, "updated_count": updated},
    )


@sio.event
async def typing(sid: str, data: dict):
    session = await sio.get_session(sid)
    conversation_id = (data or {}).get("conversation_id")
    if conversation_id:
        await emit_to_conversation(
            conversation_id,
            "user_typing",
            {"conversation_id": conversation_id, "user_id": session["user_id"], "name": session["name"]},
            skip_sid=sid,
        )


@sio.event
async def stop_typing(sid: str, data: dict):
    session = await sio.get_session(sid)
    conversation_id = (data or {}).get("conversation_id")
    if conversation_id:
        await emit_to_conversation(
            conversation_id,
            "user_stop_typing",
            {"conversation_id": conversation_id, "user_id": session["user_id"]},
            skip_sid=sid,
        )


@sio.event
async def check_online(sid: str, data: dict):
    user_ids = (data or {}).get("user_ids") or []
    await sio.emit(
        "online_status",
        {user_id: is_user_online(user_id) for user_id in user_ids},
        to=sid,
    )
