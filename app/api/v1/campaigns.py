"""
Campaign Management API endpoints.

Implements:
- Campaign CRUD (role-scoped listing, manager-only writes)
- Metrics sync from Google Ads
- Campaign sub-resources: daily metrics, asset groups, search terms and
  listing groups
"""

import math
from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_manager,
)
from app.middleware.security import limiter
from app.models import User
from app.services import campaign_service, metrics_service

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

CAMPAIGN_STATUS_PATTERN = "^(ENABLED|PAUSED|REMOVED)$"


class CampaignCreate(BaseModel):
    """Campaign creation schema."""
    client_id: str
    name: str = Field(min_length=1, max_length=255)
    google_campaign_id: Optional[str] = Field(default=None, max_length=50)
    status: str = Field(default="ENABLED", pattern=CAMPAIGN_STATUS_PATTERN)

    # Budget and bidding
    budget_daily: Optional[float] = Field(default=None, ge=0)
    budget_total: Optional[float] = Field(default=None, ge=0)
    target_roas: Optional[float] = Field(default=None, ge=0)
    target_cpa: Optional[float] = Field(default=None, ge=0)
    bidding_strategy: Optional[str] = Field(default=None, max_length=50)

    # Schedule
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    final_url: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v, info):
        if v and info.data.get("start_date") and v < info.data["start_date"]:
            raise ValueError("end_date must be after start_date")
        return v


class CampaignUpdate(BaseModel):
    """Campaign update schema."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    google_campaign_id: Optional[str] = Field(default=None, max_length=50)
    status: Optional[str] = Field(default=None, pattern=CAMPAIGN_STATUS_PATTERN)
    budget_daily: Optional[float] = Field(default=None, ge=0)
    budget_total: Optional[float] = Field(default=None, ge=0)
    target_roas: Optional[float] = Field(default=None, ge=0)
    target_cpa: Optional[float] = Field(default=None, ge=0)
    bidding_strategy: Optional[str] = Field(default=None, max_length=50)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    final_url: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("name", "google_campaign_id", "status")
    @classmethod
    def reject_null(cls, v):
        # Omitted fields keep their value; these columns cannot be cleared
        if v is None:
            raise ValueError("field cannot be null")
        return v


class SyncRequest(BaseModel):
    days: int = Field(default=30, ge=1, le=90)


# =============================================================================
# Campaign CRUD Endpoints
# =============================================================================

@router.get("")
async def list_campaigns(
    status_filter: Optional[str] = Query(default=None, alias="status", pattern=CAMPAIGN_STATUS_PATTERN),
    client_id: Optional[str] = None,
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the campaigns the user can see with their last 7 days of metrics."""
    items, total = await campaign_service.list_campaigns(
        db,
        current_user,
        status=status_filter,
        client_id=client_id,
        search=search,
        page=page,
        limit=limit,
    )
    return {
        "campaigns": [
            campaign_service.serialize_campaign(item["campaign"], metrics=item["metrics"])
            for item in items
        ],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_campaign(
    request: Request,
    data: CampaignCreate,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Create a campaign for one of the manager's clients."""
    campaign = await campaign_service.create_campaign(
        db,
        manager,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        **data.model_dump(),
    )
    return campaign_service.serialize_campaign(campaign)


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(
        db, current_user, campaign_id, with_details=True
    )
    return campaign_service.serialize_campaign(campaign, asset_groups=campaign.asset_groups)


@router.put("/{campaign_id}")
async def update_campaign(
    campaign_id: str,
    data: CampaignUpdate,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Update a campaign; every changed field lands in the change history."""
    campaign = await campaign_service.get_campaign_for_user(db, manager, campaign_id)
    campaign = await campaign_service.update_campaign(
        db,
        manager,
        campaign,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        **data.model_dump(exclude_unset=True),
    )
    return campaign_service.serialize_campaign(campaign)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, manager, campaign_id)
    await campaign_service.delete_campaign(
        db, manager, campaign, ip_address=context.ip_address, user_agent=context.user_agent
    )
    return {"message": "Campaign deleted successfully"}


@router.post("/{campaign_id}/sync")
@limiter.limit("10/minute")
async def sync_campaign(
    request: Request,
    campaign_id: str,
    data: Optional[SyncRequest] = None,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Pull metrics from Google Ads, or simulated data without a connection."""
    campaign = await campaign_service.get_campaign_for_user(db, manager, campaign_id)
    return await metrics_service.sync_campaign_metrics(
        db, campaign, user_id=manager.id, days=data.days if data else 30
    )


# =============================================================================
# Sub-resources
# =============================================================================

@router.get("/{campaign_id}/metrics")
async def get_campaign_metrics(
    campaign_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    return await metrics_service.get_daily_metrics(
        db, campaign.id, start_date=start_date, end_date=end_date, days=days
    )


@router.get("/{campaign_id}/asset-groups")
async def get_asset_groups(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    groups = await metrics_service.get_asset_groups(db, campaign)
    return {
        "asset_groups": [campaign_service.serialize_asset_group(g) for g in groups],
        "total": len(groups),
    }


@router.get("/{campaign_id}/search-terms")
async def get_search_terms(
    campaign_id: str,
    days: int = Query(default=7, ge=1, le=90),
    limit: int = Query(default=50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    return await metrics_service.get_search_terms(db, campaign, days=days, limit=limit)


@router.get("/{campaign_id}/listing-groups")
async def get_listing_groups(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    return await metrics_service.get_listing_groups(db, campaign)
