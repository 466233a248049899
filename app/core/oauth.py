"""
OAuth 2.0 flow for connecting Google Ads accounts.

Security features:
- CSRF protection via a single-use state parameter
- Refresh token encryption at rest (Fernet, see app.core.security)
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlencode

import httpx
import structlog
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from pydantic import BaseModel

from app.config import settings

logger = structlog.get_logger()

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_ADS_SCOPES = ["https://www.googleapis.com/auth/adwords"]


# =============================================================================
# OAuth State Management
# =============================================================================

class OAuthState(BaseModel):
    """OAuth state for CSRF protection."""
    state: str
    user_id: str
    client_id: Optional[str] = None
    created_at: datetime
    expires_at: datetime


# In-memory state storage, single API process only
_oauth_states: dict[str, OAuthState] = {}


def generate_oauth_state(
    user_id: str,
    client_id: Optional[str] = None,
    ttl_minutes: int = 10,
) -> str:
    """
    Generate a secure OAuth state parameter.

    Args:
        user_id: Manager initiating the connection
        client_id: Client the account will be attached to, if known
        ttl_minutes: State validity period

    Returns:
        Secure state token
    """
    cleanup_expired_states()

    state = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)

    _oauth_states[state] = OAuthState(
        state=state,
        user_id=user_id,
        client_id=client_id,
        created_at=now,
        expires_at=now + timedelta(minutes=ttl_minutes),
    )

    logger.info("oauth_state_generated", user_id=user_id, expires_in_minutes=ttl_minutes)
    return state


def validate_oauth_state(state: str) -> Optional[OAuthState]:
    """
    Validate and consume an OAuth state.

    Returns:
        OAuthState if valid, None otherwise
    """
    oauth_state = _oauth_states.pop(state, None)

    if not oauth_state:
        logger.warning("oauth_state_not_found", state=state[:10] + "...")
        return None

    if datetime.now(timezone.utc) > oauth_state.expires_at:
        logger.warning("oauth_state_expired", state=state[:10] + "...")
        return None

    return oauth_state


def cleanup_expired_states() -> int:
    """Remove expired OAuth states and return how many were removed."""
    now = datetime.now(timezone.utc)
    expired = [state for state, data in _oauth_states.items() if data.expires_at < now]

    for state in expired:
        del _oauth_states[state]

    if expired:
        logger.info("oauth_states_cleaned", count=len(expired))

    return len(expired)


# =============================================================================
# Authorization URL
# =============================================================================

def create_oauth_client() -> AsyncOAuth2Client:
    return AsyncOAuth2Client(
        client_id=settings.google_ads_client_id,
        client_secret=settings.google_ads_client_secret,
        redirect_uri=settings.google_ads_redirect_uri,
        scope=" ".join(GOOGLE_ADS_SCOPES),
    )


def get_authorization_url(user_id: str, client_id: Optional[str] = None) -> Tuple[str, str]:
    """
    Build the Google consent URL.

    Returns:
        Tuple of (authorization_url, state)
    """
    state = generate_oauth_state(user_id=user_id, client_id=client_id)

    params = {
        "client_id": settings.google_ads_client_id,
        "redirect_uri": settings.google_ads_redirect_uri,
        "response_type": "code",
        "scope": " ".join(GOOGLE_ADS_SCOPES),
        "state": state,
        "access_type": "offline",  # For refresh tokens
        "prompt": "consent",  # Always show consent to get refresh token
    }

    logger.info("oauth_authorization_url_generated", user_id=user_id)
    return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}", state


# =============================================================================
# Token Exchange
# =============================================================================

class OAuthTokens(BaseModel):
    """OAuth token data."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scopes: list[str] = []


async def exchange_code_for_tokens(code: str) -> Optional[OAuthTokens]:
    """
    Exchange an authorization code for tokens.

    Returns:
        OAuthTokens if successful, None otherwise
    """
    client = create_oauth_client()
    try:
        token = await client.fetch_token(
            GOOGLE_TOKEN_URL,
            code=code,
            grant_type="authorization_code",
        )
    except (OAuthError, httpx.HTTPError) as e:
        logger.error("oauth_token_exchange_failed", error=str(e))
        return None
    finally:
        await client.aclose()

    expires_at = None
    if "expires_in" in token:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=token["expires_in"])

    tokens = OAuthTokens(
        access_token=token["access_token"],
        refresh_token=token.get("refresh_token"),
        token_type=token.get("token_type", "Bearer"),
        expires_at=expires_at,
        scopes=token.get("scope", "").split() if token.get("scope") else [],
    )

    logger.info("oauth_tokens_exchanged", has_refresh_token=bool(tokens.refresh_token))
    return tokens
