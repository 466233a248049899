"""
Google Ads API endpoints.

Implements:
- OAuth flow storing a client's Google Ads refresh token
- Read-only passthrough to the Google Ads API for connected clients
"""

from datetime import date, timedelta
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters import get_adapter
from app.adapters.google_ads import normalize_customer_id
from app.config import settings
from app.core.database import get_db
from app.core.exceptions import AppError, ServiceUnavailableError
from app.core.oauth import (
    exchange_code_for_tokens,
    get_authorization_url,
    validate_oauth_state,
)
from app.core.security import encrypt_token
from app.middleware.auth import RequestContext, get_request_context, require_manager
from app.middleware.security import limiter
from app.models import HistoryActions, HistoryEntities, User
from app.services import client_service, history_service, metrics_service

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ConnectRequest(BaseModel):
    """Attach a Google Ads account to a client."""
    client_id: str
    customer_id: str = Field(min_length=10, max_length=20)
    # Omitted when the OAuth callback already stored one
    refresh_token: Optional[str] = Field(default=None, min_length=10, max_length=2048)


class ValidateRequest(BaseModel):
    refresh_token: str = Field(min_length=10, max_length=2048)


def _ensure_configured() -> None:
    if not settings.google_ads_configured:
        raise ServiceUnavailableError("Google Ads integration is not configured")


def _date_range(days: int) -> tuple[date, date]:
    end_date = date.today() - timedelta(days=1)
    return end_date - timedelta(days=days - 1), end_date


async def _client_credentials(
    db: AsyncSession, manager: User, client_id: str
) -> tuple[str, str]:
    """Refresh token and customer id of a connected client."""
    _ensure_configured()
    client = await client_service.get_client(db, manager, client_id)
    refresh_token = metrics_service.get_refresh_token(client)
    if not refresh_token:
        raise AppError("Client has no Google Ads account connected")
    return refresh_token, client.google_ads_customer_id


# =============================================================================
# OAuth Flow
# =============================================================================

@router.get("/auth/url")
@limiter.limit("10/minute")
async def get_auth_url(
    request: Request,
    client_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Google consent URL requesting offline access for one of the manager's clients."""
    _ensure_configured()
    client = await client_service.get_client(db, manager, client_id)
    authorization_url, state = get_authorization_url(manager.id, client_id=client.id)
    return {"authorization_url": authorization_url, "state": state}


@router.get("/auth/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Exchange the authorization code and store the refresh token.

    The token is encrypted onto the client recorded in the state and is
    never returned to the caller.
    """
    if error:
        logger.error("google_ads_oauth_denied", error=error)
        raise AppError(f"Authorization failed: {error}")
    if not code or not state:
        raise AppError("Missing code or state")

    oauth_state = validate_oauth_state(state)
    if oauth_state is None or oauth_state.client_id is None:
        raise AppError("Invalid or expired state")

    manager = await db.get(User, oauth_state.user_id)
    if manager is None or not manager.is_manager:
        raise AppError("Invalid or expired state")
    client = await client_service.get_client(db, manager, oauth_state.client_id)

    tokens = await exchange_code_for_tokens(code)
    if tokens is None:
        raise AppError("Failed to exchange authorization code")
    if not tokens.refresh_token:
        raise AppError("Google did not return a refresh token")

    client.google_ads_refresh_token = encrypt_token(tokens.refresh_token)
    await history_service.log_change(
        db,
        action=HistoryActions.UPDATE,
        entity_type=HistoryEntities.CLIENT,
        user_id=manager.id,
        entity_id=client.id,
        entity_name=client.name,
        description=f"Acesso ao Google Ads autorizado para o cliente '{client.name}'",
    )
    await db.commit()

    logger.info("google_ads_oauth_completed", client_id=client.id, manager_id=manager.id)
    return {
        "client_id": client.id,
        "authorized": True,
        "customer_id": client.google_ads_customer_id,
        "redirect_url": f"/clients/{client.id}?google_ads=authorized",
    }


@router.post("/auth/connect")
async def connect_account(
    data: ConnectRequest,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Store the customer id, and optionally a refresh token, on a client."""
    _ensure_configured()
    client = await client_service.get_client(db, manager, data.client_id)
    if data.refresh_token is None and not client.google_ads_refresh_token:
        raise AppError("Client has not authorized Google Ads access")

    customer_id = normalize_customer_id(data.customer_id)
    old_customer_id = client.google_ads_customer_id

    client.google_ads_customer_id = customer_id
    if data.refresh_token is not None:
        client.google_ads_refresh_token = encrypt_token(data.refresh_token)

    await history_service.log_change(
        db,
        action=HistoryActions.UPDATE,
        entity_type=HistoryEntities.CLIENT,
        user_id=manager.id,
        entity_id=client.id,
        entity_name=client.name,
        changes=[
            {
                "field": "google_ads_customer_id",
                "label": "Conta Google Ads",
                "old_value": old_customer_id,
                "new_value": customer_id,
            }
        ],
        description=f"Conta Google Ads {customer_id} conectada ao cliente '{client.name}'",
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    await db.commit()

    logger.info("google_ads_connected", client_id=client.id, customer_id=customer_id)
    return {"client_id": client.id, "customer_id": customer_id, "connected": True}


@router.post("/auth/validate")
@limiter.limit("10/minute")
async def validate_token(
    request: Request,
    data: ValidateRequest,
    manager: User = Depends(require_manager),
):
    _ensure_configured()
    valid = await get_adapter().validate_credentials(data.refresh_token)
    return {"valid": valid}


# =============================================================================
# Passthrough
# =============================================================================

@router.get("/clients/{client_id}/accounts")
async def list_accounts(
    client_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, _ = await _client_credentials(db, manager, client_id)
    accounts = await get_adapter().list_accounts(refresh_token)
    return {
        "accounts": [
            {
                "customer_id": a.account_id,
                "name": a.account_name,
                "currency": a.currency,
                "timezone": a.timezone,
                "status": a.status,
                "is_manager": a.is_manager,
            }
            for a in accounts
        ],
        "total": len(accounts),
    }


@router.get("/clients/{client_id}/campaigns")
async def list_campaigns(
    client_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    campaigns = await get_adapter().list_pmax_campaigns(refresh_token, customer_id)
    return {
        "campaigns": [
            {
                "google_campaign_id": c.campaign_id,
                "name": c.name,
                "status": c.status,
                "bidding_strategy": c.bidding_strategy,
                "budget_daily": c.budget_daily,
                "target_roas": c.target_roas,
                "target_cpa": c.target_cpa,
                "start_date": c.start_date.isoformat() if c.start_date else None,
                "end_date": c.end_date.isoformat() if c.end_date else None,
            }
            for c in campaigns
        ],
        "total": len(campaigns),
    }


@router.get("/clients/{client_id}/campaigns/{google_campaign_id}/metrics")
async def get_campaign_metrics(
    client_id: str,
    google_campaign_id: str,
    days: int = Query(default=30, ge=1, le=365),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    start_date, end_date = _date_range(days)
    adapter = get_adapter()
    totals = await adapter.get_campaign_metrics(
        refresh_token, customer_id, google_campaign_id, start_date, end_date
    )
    impression_share = await adapter.get_impression_share(
        refresh_token, customer_id, google_campaign_id, start_date, end_date
    )
    return {
        "google_campaign_id": google_campaign_id,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "metrics": totals.to_dict(),
        "impression_share": {
            "search_impression_share": impression_share.search_impression_share,
            "search_budget_lost_impression_share": impression_share.search_budget_lost_impression_share,
            "search_rank_lost_impression_share": impression_share.search_rank_lost_impression_share,
            "top_impression_percentage": impression_share.top_impression_percentage,
            "absolute_top_impression_percentage": impression_share.absolute_top_impression_percentage,
            "content_impression_share": impression_share.content_impression_share,
            "content_budget_lost_impression_share": impression_share.content_budget_lost_impression_share,
            "content_rank_lost_impression_share": impression_share.content_rank_lost_impression_share,
        },
    }


@router.get("/clients/{client_id}/campaigns/{google_campaign_id}/daily")
async def get_daily_metrics(
    client_id: str,
    google_campaign_id: str,
    days: int = Query(default=30, ge=1, le=365),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    start_date, end_date = _date_range(days)
    rows = await get_adapter().get_daily_metrics(
        refresh_token, customer_id, google_campaign_id, start_date, end_date
    )
    return {"google_campaign_id": google_campaign_id, "daily": [row.to_dict() for row in rows]}


@router.get("/clients/{client_id}/campaigns/{google_campaign_id}/asset-groups")
async def list_asset_groups(
    client_id: str,
    google_campaign_id: str,
    days: int = Query(default=30, ge=1, le=365),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    start_date, end_date = _date_range(days)
    groups = await get_adapter().list_asset_groups(
        refresh_token, customer_id, google_campaign_id, start_date=start_date, end_date=end_date
    )
    return {
        "asset_groups": [
            {
                "asset_group_id": g.asset_group_id,
                "name": g.name,
                "status": g.status,
                "final_urls": g.final_urls,
                "path1": g.path1,
                "path2": g.path2,
                "ad_strength": g.ad_strength,
                "metrics": g.metrics.to_dict() if g.metrics else None,
            }
            for g in groups
        ],
        "total": len(groups),
    }


@router.get("/clients/{client_id}/asset-groups/{asset_group_id}/assets")
async def list_asset_group_assets(
    client_id: str,
    asset_group_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    assets = await get_adapter().list_asset_group_assets(refresh_token, customer_id, asset_group_id)
    return {
        "assets": [
            {
                "asset_id": a.asset_id,
                "field_type": a.field_type,
                "status": a.status,
                "performance_label": a.performance_label,
                "text": a.text,
                "image_url": a.image_url,
                "youtube_video_id": a.youtube_video_id,
            }
            for a in assets
        ],
        "total": len(assets),
    }


@router.get("/clients/{client_id}/asset-groups/{asset_group_id}/listing-groups")
async def list_listing_groups(
    client_id: str,
    asset_group_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    groups = await get_adapter().list_listing_groups(refresh_token, customer_id, asset_group_id)
    return {
        "listing_groups": [
            {
                "listing_group_id": g.listing_group_id,
                "type": g.type,
                "dimension": g.dimension,
                "value": g.value,
                "parent_id": g.parent_id,
            }
            for g in groups
        ],
        "total": len(groups),
    }


@router.get("/clients/{client_id}/campaigns/{google_campaign_id}/search-terms")
async def list_search_terms(
    client_id: str,
    google_campaign_id: str,
    days: int = Query(default=7, ge=1, le=90),
    limit: int = Query(default=100, ge=1, le=1000),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    refresh_token, customer_id = await _client_credentials(db, manager, client_id)
    start_date, end_date = _date_range(days)
    terms = await get_adapter().list_search_terms(
        refresh_token, customer_id, google_campaign_id, start_date, end_date, limit=limit
    )
    return {
        "search_terms": [
            {
                "search_term": t.search_term,
                "status": t.status,
                "impressions": t.impressions,
                "clicks": t.clicks,
                "cost": t.cost,
                "conversions": t.conversions,
                "conversion_value": t.conversion_value,
            }
            for t in terms
        ],
        "total": len(terms),
    }
