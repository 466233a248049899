"""
Tests for manager/client conversations.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from app.config import settings
from app.core.exceptions import AppError
from app.services import chat_service


@pytest.fixture
async def conversation_id(http_client, client_account, manager_headers):
    response = await http_client.post(
        "/api/v1/chat/conversations",
        headers=manager_headers,
        json={"client_id": client_account.id},
    )
    assert response.status_code == 200
    return response.json()["id"]


@pytest.mark.anyio
async def test_conversation_is_unique_per_pair(
    http_client, conversation_id, client_account, manager_headers, client_headers
):
    again = await http_client.post(
        "/api/v1/chat/conversations",
        headers=manager_headers,
        json={"client_id": client_account.id},
    )
    assert again.json()["id"] == conversation_id

    # The client user reaches the same conversation without naming a client
    from_client = await http_client.post(
        "/api/v1/chat/conversations", headers=client_headers, json={}
    )
    assert from_client.json()["id"] == conversation_id


@pytest.mark.anyio
async def test_manager_must_name_client(http_client, manager, manager_headers):
    response = await http_client.post(
        "/api/v1/chat/conversations", headers=manager_headers, json={}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "client_id is required"


@pytest.mark.anyio
async def test_send_and_read_messages(
    http_client, conversation_id, manager, manager_headers, client_headers
):
    url = f"/api/v1/chat/conversations/{conversation_id}/messages"
    response = await http_client.post(
        url, headers=manager_headers, json={"content": "  Olá! Tudo certo com a campanha?  "}
    )
    assert response.status_code == 201
    message = response.json()
    assert message["content"] == "Olá! Tudo certo com a campanha?"
    assert message["sender_id"] == manager.id

    response = await http_client.get("/api/v1/chat/unread-count", headers=client_headers)
    assert response.json() == {"unread_count": 1}

    response = await http_client.get(url, headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["pagination"]["total"] == 1
    assert [m["id"] for m in data["messages"]] == [message["id"]]

    response = await http_client.post(
        f"/api/v1/chat/conversations/{conversation_id}/read", headers=client_headers
    )
    assert response.json() == {"updated_count": 1}

    response = await http_client.get("/api/v1/chat/unread-count", headers=client_headers)
    assert response.json() == {"unread_count": 0}


@pytest.mark.anyio
async def test_empty_message_is_rejected(http_client, conversation_id, client_headers):
    response = await http_client.post(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=client_headers,
        json={"content": "   "},
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_outsider_cannot_read_conversation(
    http_client, conversation_id, other_manager_headers
):
    response = await http_client.get(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=other_manager_headers,
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_list_conversations_shows_participant(
    http_client, conversation_id, client_account, manager_headers
):
    await http_client.post(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=manager_headers,
        json={"content": "Primeira mensagem"},
    )

    response = await http_client.get("/api/v1/chat/conversations", headers=manager_headers)
    data = response.json()
    assert data["total"] == 1
    conversation = data["conversations"][0]
    assert conversation["participant"]["id"] == client_account.id
    assert conversation["last_message"] == "Primeira mensagem"
    assert conversation["unread_count"] == 0
    assert conversation["is_online"] is False


@pytest.mark.anyio
async def test_get_conversation_with_unread_count(
    http_client, conversation_id, manager_headers, client_headers, other_manager_headers
):
    await http_client.post(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=manager_headers,
        json={"content": "Relatório semanal enviado"},
    )

    response = await http_client.get(
        f"/api/v1/chat/conversations/{conversation_id}", headers=client_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == conversation_id
    assert data["unread_count"] == 1

    response = await http_client.get(
        f"/api/v1/chat/conversations/{conversation_id}", headers=manager_headers
    )
    assert response.json()["unread_count"] == 0

    response = await http_client.get(
        f"/api/v1/chat/conversations/{conversation_id}", headers=other_manager_headers
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_has_more_only_when_messages_remain(http_client, conversation_id, manager_headers):
    url = f"/api/v1/chat/conversations/{conversation_id}/messages"
    for i in range(3):
        await http_client.post(url, headers=manager_headers, json={"content": f"Mensagem {i}"})

    response = await http_client.get(url, headers=manager_headers, params={"limit": 3})
    assert response.json()["pagination"]["has_more"] is False
    assert len(response.json()["messages"]) == 3

    response = await http_client.get(url, headers=manager_headers, params={"limit": 2})
    assert response.json()["pagination"]["has_more"] is True
    assert len(response.json()["messages"]) == 2


@pytest.mark.anyio
async def test_server_message_types_are_rejected(
    http_client, db, conversation_id, client_user, client_headers
):
    response = await http_client.post(
        f"/api/v1/chat/conversations/{conversation_id}/messages",
        headers=client_headers,
        json={"content": "Alerta falso", "message_type": "ALERT"},
    )
    assert response.status_code == 422

    for message_type in ("ALERT", "SYSTEM", "IMAGE"):
        with pytest.raises(AppError) as exc_info:
            await chat_service.send_message(
                db, client_user, conversation_id, content="Alerta falso", message_type=message_type
            )
        assert exc_info.value.message == f"Invalid message type: {message_type}"


@pytest.mark.anyio
async def test_uploaded_attachment_is_served(http_client, client_headers):
    response = await http_client.post(
        "/api/v1/chat/upload",
        headers=client_headers,
        files={"file": ("relatorio final.pdf", b"%PDF-1.4 conteudo", "application/pdf")},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "relatorio final.pdf"
    assert data["size"] == len(b"%PDF-1.4 conteudo")
    assert data["url"].startswith("/uploads/chat/")
    assert " " not in data["url"]

    response = await http_client.get(data["url"])
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 conteudo"


@pytest.mark.anyio
async def test_upload_limits(http_client, client_headers):
    with patch.object(settings, "max_upload_size_mb", 1):
        response = await http_client.post(
            "/api/v1/chat/upload",
            headers=client_headers,
            files={"file": ("grande.bin", b"x" * (1024 * 1024 + 1), "application/octet-stream")},
        )
    assert response.status_code == 413
    assert response.json()["error"] == "payload_too_large"
    assert not list((Path(settings.upload_dir) / "chat").glob("*_grande.bin"))

    response = await http_client.post(
        "/api/v1/chat/upload",
        headers=client_headers,
        files={"file": ("vazio.txt", b"", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Uploaded file is empty"
