"""
Tests for the Socket.IO event handlers, called directly with the server patched.
"""

from contextlib import contextmanager
from unittest.mock import AsyncMock, patch

import pytest
from socketio.exceptions import ConnectionRefusedError as SocketConnectionRefused

from app import realtime
from app.core.security import create_access_token
from app.services import chat_service


@pytest.fixture(autouse=True)
def online_users(monkeypatch):
    users = {}
    monkeypatch.setattr(realtime, "_online_users", users)
    return users


@contextmanager
def patched_sio(session=None):
    sio = realtime.sio
    with patch.object(sio, "emit", new_callable=AsyncMock) as emit, patch.object(
        sio, "enter_room", new_callable=AsyncMock
    ) as enter_room, patch.object(
        sio, "save_session", new_callable=AsyncMock
    ) as save_session, patch.object(
        sio, "get_session", new_callable=AsyncMock, return_value=session or {}
    ):
        yield emit, enter_room, save_session


def emitted(emit, event):
    return [c.args[1] for c in emit.await_args_list if c.args[0] == event]


def session_for(user):
    return {"user_id": user.id, "name": user.name, "role": user.role}


@pytest.fixture
async def conversation(db, manager, client_account):
    return await chat_service.create_or_get_conversation(db, manager, client_id=client_account.id)


@pytest.mark.anyio
async def test_connect_rejects_missing_or_bad_token(session_factory):
    with patched_sio() as (emit, enter_room, save_session):
        with pytest.raises(SocketConnectionRefused):
            await realtime.connect("sid-1", {}, None)
        with pytest.raises(SocketConnectionRefused):
            await realtime.connect("sid-1", {}, {"token": "not-a-jwt"})
    save_session.assert_not_awaited()
    enter_room.assert_not_awaited()


@pytest.mark.anyio
async def test_presence_follows_connections(manager):
    token = create_access_token(manager.id, manager.email, manager.role)

    with patched_sio(session_for(manager)) as (emit, enter_room, save_session):
        await realtime.connect("sid-1", {"QUERY_STRING": f"token={token}"}, None)
        await realtime.connect("sid-2", {}, {"token": token})

        assert realtime.is_user_online(manager.id)
        assert realtime.get_online_users() == [manager.id]
        enter_room.assert_any_await("sid-1", realtime.user_room(manager.id))
        # Announced once per user, not per socket
        assert emitted(emit, "user_online") == [{"user_id": manager.id}]

        await realtime.disconnect("sid-1")
        assert realtime.is_user_online(manager.id)
        assert emitted(emit, "user_offline") == []

        await realtime.disconnect("sid-2")
        assert not realtime.is_user_online(manager.id)
        assert emitted(emit, "user_offline") == [{"user_id": manager.id}]


@pytest.mark.anyio
async def test_join_conversation_checks_access(conversation, client_user, other_manager):
    room = chat_service.conversation_room(conversation.id)

    with patched_sio(session_for(other_manager)) as (emit, enter_room, _):
        await realtime.join_conversation("sid-1", {"conversation_id": conversation.id})
    enter_room.assert_not_awaited()
    assert emitted(emit, "error")[0]["event"] == "join_conversation"

    with patched_sio(session_for(client_user)) as (emit, enter_room, _):
        await realtime.join_conversation("sid-2", {"conversation_id": conversation.id})
    enter_room.assert_awaited_once_with("sid-2", room)
    assert emitted(emit, "joined_conversation") == [{"conversation_id": conversation.id}]


@pytest.mark.anyio
async def test_send_message_acknowledges_sender(conversation, client_user):
    with patched_sio(session_for(client_user)) as (emit, _, _):
        await realtime.send_message(
            "sid-1",
            {"conversation_id": conversation.id, "content": "Oi!", "temp_id": "tmp-1"},
        )

    sent = emitted(emit, "message_sent")
    assert len(sent) == 1
    assert sent[0]["temp_id"] == "tmp-1"
    assert sent[0]["message"]["content"] == "Oi!"
    assert sent[0]["message"]["message_type"] == "TEXT"
    assert emitted(emit, "new_message")[0]["id"] == sent[0]["message"]["id"]


@pytest.mark.anyio
async def test_send_message_rejects_server_types(conversation, client_user):
    with patched_sio(session_for(client_user)) as (emit, _, _):
        await realtime.send_message(
            "sid-1",
            {"conversation_id": conversation.id, "content": "Alerta", "message_type": "ALERT"},
        )

    assert emitted(emit, "message_sent") == []
    assert emitted(emit, "error") == [
        {"event": "send_message", "message": "Invalid message type: ALERT"}
    ]
