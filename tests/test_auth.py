"""
Tests for registration, login, token refresh and the current user.
"""

import pytest

PASSWORD = "password123"


@pytest.mark.anyio
async def test_register_manager(http_client):
    response = await http_client.post(
        "/api/v1/auth/register",
        json={"email": "Nova@Agencia.com", "password": "senha123", "name": "Nova Gestora"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["user"]["email"] == "nova@agencia.com"
    assert data["user"]["role"] == "manager"


@pytest.mark.anyio
async def test_register_duplicate_email(http_client, manager):
    response = await http_client.post(
        "/api/v1/auth/register",
        json={"email": manager.email.upper(), "password": "senha123", "name": "Copia"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Email already registered"


@pytest.mark.anyio
async def test_register_validates_password_length(http_client):
    response = await http_client.post(
        "/api/v1/auth/register",
        json={"email": "curta@agencia.com", "password": "123", "name": "Curta"},
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_login_success(http_client, manager):
    response = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": PASSWORD}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["id"] == manager.id
    assert data["user"]["last_login_at"] is not None


@pytest.mark.anyio
async def test_login_wrong_password(http_client, manager):
    response = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


@pytest.mark.anyio
async def test_login_inactive_user(http_client, db, manager):
    manager.is_active = False
    await db.commit()

    response = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "User is deactivated"


@pytest.mark.anyio
async def test_refresh_issues_new_pair(http_client, manager):
    login = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": PASSWORD}
    )
    refresh_token = login.json()["refresh_token"]

    response = await http_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": refresh_token}
    )
    assert response.status_code == 200
    assert response.json()["user"]["id"] == manager.id


@pytest.mark.anyio
async def test_refresh_rejects_access_token(http_client, manager):
    login = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": PASSWORD}
    )
    response = await http_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": login.json()["access_token"]}
    )
    assert response.status_code == 401


@pytest.mark.anyio
async def test_me_requires_token(http_client):
    response = await http_client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication token not provided"


@pytest.mark.anyio
async def test_me_rejects_invalid_token(http_client):
    response = await http_client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


@pytest.mark.anyio
async def test_me_returns_profile(http_client, client_user, client_headers):
    response = await http_client.get("/api/v1/auth/me", headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == client_user.email
    assert data["role"] == "client"
    assert "password_hash" not in data


@pytest.mark.anyio
async def test_change_password(http_client, manager, manager_headers):
    response = await http_client.put(
        "/api/v1/auth/password",
        headers=manager_headers,
        json={"current_password": PASSWORD, "new_password": "nova-senha-123"},
    )
    assert response.status_code == 200

    response = await http_client.post(
        "/api/v1/auth/login", json={"email": manager.email, "password": "nova-senha-123"}
    )
    assert response.status_code == 200
