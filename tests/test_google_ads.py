"""
Tests for the Google Ads adapter helpers, OAuth flow and passthrough routes.
"""

from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.adapters import (
    AuthenticationError,
    GoogleAdsAdapter,
    PlatformError,
    RateLimitError,
    ValidationError,
)
from app.adapters.google_ads import micros_to_units, normalize_customer_id
from app.config import settings
from app.core.oauth import OAuthTokens, generate_oauth_state
from app.core.security import decrypt_token, encrypt_token
from app.models import Client

REFRESH_TOKEN = "1//refresh-token-from-google"


@contextmanager
def google_ads_configured():
    with patch.object(settings, "google_ads_client_id", "client-id"), patch.object(
        settings, "google_ads_client_secret", "client-secret"
    ), patch.object(settings, "google_ads_developer_token", "developer-token"):
        yield


def google_failure(error_code: dict, message: str = "failed"):
    """Object shaped like a GoogleAdsException for the error mapper."""
    detail = SimpleNamespace(error_code=error_code, message=message)
    return SimpleNamespace(failure=SimpleNamespace(errors=[detail]), request_id="req-123")


def test_micros_to_units():
    assert micros_to_units(2_500_000) == 2.5
    assert micros_to_units(0) is None
    assert micros_to_units(None) is None


def test_normalize_customer_id():
    assert normalize_customer_id("123-456-7890") == "1234567890"
    assert normalize_customer_id(1234567890) == "1234567890"


@pytest.mark.parametrize(
    "error_code, expected",
    [
        ({"authentication_error": 1}, AuthenticationError),
        ({"authorization_error": 1}, AuthenticationError),
        ({"quota_error": 1}, RateLimitError),
        ({"query_error": 1}, ValidationError),
        ({"internal_error": 1}, PlatformError),
    ],
)
def test_google_errors_are_mapped(error_code, expected):
    adapter = GoogleAdsAdapter()
    with pytest.raises(expected) as exc_info:
        adapter._handle_google_error(google_failure(error_code), "list_accounts")
    assert exc_info.value.platform == "google"


def test_unknown_google_error_keeps_request_id():
    adapter = GoogleAdsAdapter()
    with pytest.raises(PlatformError) as exc_info:
        adapter._handle_google_error(google_failure({}, "boom"), "list_accounts")
    assert exc_info.value.message == "Google Ads error: boom"
    assert exc_info.value.details == {"request_id": "req-123"}


# =============================================================================
# Routes
# =============================================================================

@pytest.mark.anyio
async def test_routes_unavailable_without_credentials(http_client, client_account, manager_headers):
    response = await http_client.get(
        f"/api/v1/google-ads/clients/{client_account.id}/accounts", headers=manager_headers
    )
    assert response.status_code == 503
    assert response.json()["error"] == "service_unavailable"

    response = await http_client.get(
        "/api/v1/google-ads/auth/url",
        params={"client_id": client_account.id},
        headers=manager_headers,
    )
    assert response.status_code == 503


@pytest.mark.anyio
async def test_auth_url_requires_own_client(http_client, other_campaign, manager_headers):
    with google_ads_configured():
        response = await http_client.get(
            "/api/v1/google-ads/auth/url",
            params={"client_id": other_campaign.client_id},
            headers=manager_headers,
        )
    assert response.status_code == 404


@pytest.mark.anyio
async def test_adapter_errors_become_http_errors(http_client, db, client_account, manager_headers):
    client_account.google_ads_customer_id = "1234567890"
    client_account.google_ads_refresh_token = encrypt_token(REFRESH_TOKEN)
    await db.commit()

    adapter = MagicMock()
    adapter.list_accounts = AsyncMock(
        side_effect=AuthenticationError(message="Google Ads authentication failed", platform="google")
    )
    with google_ads_configured(), patch("app.api.v1.google_ads.get_adapter", return_value=adapter):
        response = await http_client.get(
            f"/api/v1/google-ads/clients/{client_account.id}/accounts", headers=manager_headers
        )
    assert response.status_code == 401
    assert response.json()["error"] == "google_ads_unauthorized"
    adapter.list_accounts.assert_awaited_once_with(REFRESH_TOKEN)


@pytest.mark.anyio
async def test_callback_stores_token_on_client(
    http_client, session_factory, manager, client_account
):
    state = generate_oauth_state(manager.id, client_id=client_account.id)
    tokens = OAuthTokens(access_token="access", refresh_token=REFRESH_TOKEN)

    with patch(
        "app.api.v1.google_ads.exchange_code_for_tokens",
        new_callable=AsyncMock,
        return_value=tokens,
    ):
        response = await http_client.get(
            "/api/v1/google-ads/auth/callback", params={"code": "auth-code", "state": state}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["client_id"] == client_account.id
        assert data["authorized"] is True
        assert REFRESH_TOKEN not in response.text

        # State is single use
        response = await http_client.get(
            "/api/v1/google-ads/auth/callback", params={"code": "auth-code", "state": state}
        )
        assert response.status_code == 400

    async with session_factory() as session:
        stored = await session.get(Client, client_account.id)
    assert decrypt_token(stored.google_ads_refresh_token) == REFRESH_TOKEN


@pytest.mark.anyio
async def test_callback_rejects_state_for_foreign_client(
    http_client, session_factory, manager, other_campaign
):
    state = generate_oauth_state(manager.id, client_id=other_campaign.client_id)

    with patch(
        "app.api.v1.google_ads.exchange_code_for_tokens", new_callable=AsyncMock
    ) as exchange:
        response = await http_client.get(
            "/api/v1/google-ads/auth/callback", params={"code": "auth-code", "state": state}
        )
    assert response.status_code == 404
    exchange.assert_not_awaited()

    async with session_factory() as session:
        stored = await session.get(Client, other_campaign.client_id)
    assert stored.google_ads_refresh_token is None


@pytest.mark.anyio
async def test_connect_uses_token_from_callback(
    http_client, db, session_factory, client_account, manager_headers
):
    with google_ads_configured():
        response = await http_client.post(
            "/api/v1/google-ads/auth/connect",
            headers=manager_headers,
            json={"client_id": client_account.id, "customer_id": "123-456-7890"},
        )
        assert response.status_code == 400

        client_account.google_ads_refresh_token = encrypt_token(REFRESH_TOKEN)
        await db.commit()

        response = await http_client.post(
            "/api/v1/google-ads/auth/connect",
            headers=manager_headers,
            json={"client_id": client_account.id, "customer_id": "123-456-7890"},
        )
    assert response.status_code == 200
    assert response.json()["customer_id"] == "1234567890"

    async with session_factory() as session:
        stored = await session.get(Client, client_account.id)
    assert stored.has_google_ads
    assert decrypt_token(stored.google_ads_refresh_token) == REFRESH_TOKEN
