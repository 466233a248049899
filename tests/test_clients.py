"""
Tests for client management.
"""

import pytest
from sqlalchemy import select

from app.models import ChangeHistory, Client, User


@pytest.mark.anyio
async def test_create_client_with_login(http_client, session_factory, manager, manager_headers):
    response = await http_client.post(
        "/api/v1/clients",
        headers=manager_headers,
        json={
            "name": "João Lojista",
            "email": "Joao@Loja.com",
            "company": "Loja do João",
            "password": "senha123",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "joao@loja.com"
    assert data["manager_id"] == manager.id
    assert data["campaigns_count"] == 0
    assert data["google_ads_connected"] is False

    async with session_factory() as session:
        login = (
            await session.execute(select(User).where(User.email == "joao@loja.com"))
        ).scalar_one()
        assert login.role == "client"
        assert login.manager_id == manager.id
        assert data["user_id"] == login.id

        history = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.entity_id == data["id"])
            )
        ).scalar_one()
        assert history.action == "CREATE"
        assert history.entity_type == "CLIENT"


@pytest.mark.anyio
async def test_create_client_duplicate_email(http_client, client_account, manager_headers):
    response = await http_client.post(
        "/api/v1/clients",
        headers=manager_headers,
        json={"name": "Duplicado", "email": client_account.email.upper()},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "A client with this email already exists"


@pytest.mark.anyio
async def test_client_user_cannot_manage_clients(http_client, client_account, client_headers):
    response = await http_client.get("/api/v1/clients", headers=client_headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Manager access required"


@pytest.mark.anyio
async def test_list_clients_is_scoped(
    http_client, client_account, other_campaign, manager_headers
):
    response = await http_client.get("/api/v1/clients", headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [c["id"] for c in data["items"]] == [client_account.id]


@pytest.mark.anyio
async def test_list_clients_search(http_client, client_account, manager_headers):
    response = await http_client.get(
        "/api/v1/clients", headers=manager_headers, params={"search": "loja teste"}
    )
    assert response.json()["total"] == 1

    response = await http_client.get(
        "/api/v1/clients", headers=manager_headers, params={"search": "inexistente"}
    )
    assert response.json()["total"] == 0


@pytest.mark.anyio
async def test_other_manager_gets_not_found(http_client, client_account, other_manager_headers):
    response = await http_client.get(
        f"/api/v1/clients/{client_account.id}", headers=other_manager_headers
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Client not found"


@pytest.mark.anyio
async def test_update_client(http_client, client_account, manager_headers):
    response = await http_client.put(
        f"/api/v1/clients/{client_account.id}",
        headers=manager_headers,
        json={"company": "Nova Razão Social"},
    )
    assert response.status_code == 200
    assert response.json()["company"] == "Nova Razão Social"


@pytest.mark.anyio
async def test_delete_client_is_soft(http_client, session_factory, client_account, manager_headers):
    response = await http_client.delete(
        f"/api/v1/clients/{client_account.id}", headers=manager_headers
    )
    assert response.status_code == 200

    async with session_factory() as session:
        client = await session.get(Client, client_account.id)
        assert client is not None
        assert client.is_active is False
