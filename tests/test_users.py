"""
Tests for client logins managed through /users and their tenant isolation.
"""

import pytest
from sqlalchemy import select

from app.core.security import create_access_token, hash_password
from app.models import Client, User

PASSWORD = "password123"


async def login_headers(http_client, email: str) -> dict:
    response = await http_client.post(
        "/api/v1/auth/login", json={"email": email, "password": PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.mark.anyio
async def test_cannot_create_login_for_another_managers_client(
    http_client, session_factory, other_campaign, manager_headers
):
    response = await http_client.post(
        "/api/v1/users",
        headers=manager_headers,
        json={"email": "ALHEIO@example.com", "password": PASSWORD, "name": "Intruso"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Email belongs to a client of another manager"

    async with session_factory() as session:
        users = (
            await session.execute(select(User).where(User.email == "alheio@example.com"))
        ).scalars().all()
    assert users == []


@pytest.mark.anyio
async def test_email_match_stays_within_manager(
    http_client, db, campaign, other_campaign, manager
):
    # A client login of one manager sharing an e-mail with another manager's client
    intruder = User(
        email="alheio@example.com",
        password_hash=hash_password(PASSWORD),
        name="Intruso",
        role="client",
        manager_id=manager.id,
    )
    db.add(intruder)
    await db.commit()
    headers = {
        "Authorization": f"Bearer {create_access_token(intruder.id, intruder.email, intruder.role)}"
    }

    response = await http_client.get("/api/v1/campaigns", headers=headers)
    assert response.status_code == 200
    assert response.json()["campaigns"] == []

    response = await http_client.get(f"/api/v1/campaigns/{other_campaign.id}", headers=headers)
    assert response.status_code == 403

    response = await http_client.get("/api/v1/history", headers=headers)
    assert response.json()["total"] == 0

    response = await http_client.get("/api/v1/alerts", headers=headers)
    assert response.json()["total"] == 0


@pytest.mark.anyio
async def test_login_for_own_client_is_linked(
    http_client, session_factory, manager, manager_headers
):
    response = await http_client.post(
        "/api/v1/clients",
        headers=manager_headers,
        json={"name": "Loja Nova", "email": "nova@example.com"},
    )
    assert response.status_code == 201
    client_id = response.json()["id"]

    response = await http_client.post(
        "/api/v1/campaigns",
        headers=manager_headers,
        json={"client_id": client_id, "name": "PMax Loja Nova"},
    )
    assert response.status_code == 201

    response = await http_client.post(
        "/api/v1/users",
        headers=manager_headers,
        json={"email": "nova@example.com", "password": PASSWORD, "name": "Loja Nova"},
    )
    assert response.status_code == 201
    user_id = response.json()["id"]
    assert response.json()["role"] == "client"

    async with session_factory() as session:
        client = await session.get(Client, client_id)
    assert client.user_id == user_id

    headers = await login_headers(http_client, "nova@example.com")
    response = await http_client.get("/api/v1/campaigns", headers=headers)
    assert [c["name"] for c in response.json()["campaigns"]] == ["PMax Loja Nova"]


@pytest.mark.anyio
async def test_users_are_listed_per_manager(
    http_client, client_user, manager_headers, other_manager_headers
):
    response = await http_client.get("/api/v1/users", headers=manager_headers)
    assert [u["id"] for u in response.json()["users"]] == [client_user.id]

    response = await http_client.get("/api/v1/users", headers=other_manager_headers)
    assert response.json()["total"] == 0

    response = await http_client.get(
        f"/api/v1/users/{client_user.id}", headers=other_manager_headers
    )
    assert response.status_code == 404
