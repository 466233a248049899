"""
Campaign Service

Role-scoped campaign management:
- Listing with a 7 day metrics aggregate
- Creation by managers for their clients
- Updates recorded field by field in the change history
- Deletion with cascade to metrics, assets, alerts and recommendations
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import AppError, NotFoundError, PermissionDeniedError
from app.models import (
    CAMPAIGN_TRACKED_FIELDS,
    AssetGroup,
    Campaign,
    CampaignMetric,
    Client,
    HistoryActions,
    User,
)
from app.services import history_service
from app.services.client_service import client_scope_condition

logger = structlog.get_logger()


def campaign_scope_condition(user: User):
    """Condition selecting the campaigns a user may see (requires a join on Client)."""
    return client_scope_condition(user)


async def get_campaign_for_user(
    db: AsyncSession,
    user: User,
    campaign_id: str,
    with_details: bool = False,
) -> Campaign:
    """
    Load a campaign the user may access.

    Raises:
        NotFoundError: The campaign does not exist
        PermissionDeniedError: The campaign belongs to someone else
    """
    query = (
        select(Campaign)
        .where(Campaign.id == campaign_id)
        .options(selectinload(Campaign.client))
    )
    if with_details:
        query = query.options(selectinload(Campaign.asset_groups))

    campaign = (await db.execute(query)).scalar_one_or_none()
    if campaign is None:
        raise NotFoundError("Campaign not found")

    client = campaign.client
    if user.is_manager:
        allowed = client.manager_id == user.id
    else:
        allowed = client.is_linked_to(user)
    if not allowed:
        raise PermissionDeniedError("You do not have access to this campaign")

    return campaign


async def _aggregate_recent_metrics(
    db: AsyncSession, campaign_ids: list[str], days: int = 7
) -> dict[str, dict[str, Any]]:
    if not campaign_ids:
        return {}

    since = date.today() - timedelta(days=days)
    result = await db.execute(
        select(
            CampaignMetric.campaign_id,
            func.sum(CampaignMetric.impressions),
            func.sum(CampaignMetric.clicks),
            func.sum(CampaignMetric.cost),
            func.sum(CampaignMetric.conversions),
            func.sum(CampaignMetric.conversion_value),
        )
        .where(CampaignMetric.campaign_id.in_(campaign_ids), CampaignMetric.date >= since)
        .group_by(CampaignMetric.campaign_id)
    )

    aggregates = {}
    for campaign_id, impressions, clicks, cost, conversions, value in result.all():
        impressions, clicks = int(impressions or 0), int(clicks or 0)
        cost, conversions, value = float(cost or 0), float(conversions or 0), float(value or 0)
        aggregates[campaign_id] = {
            "impressions": impressions,
            "clicks": clicks,
            "cost": round(cost, 2),
            "conversions": round(conversions, 2),
            "conversion_value": round(value, 2),
            **CampaignMetric.calculate_derived_metrics(impressions, clicks, cost, conversions, value),
        }
    return aggregates


async def list_campaigns(
    db: AsyncSession,
    user: User,
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict[str, Any]], int]:
    """
    List campaigns visible to the user with their last 7 days of metrics.

    Returns:
        Tuple of ([{"campaign", "metrics"}], total count)
    """
    conditions = [campaign_scope_condition(user)]
    if status:
        conditions.append(Campaign.status == status)
    if client_id:
        conditions.append(Campaign.client_id == client_id)
    if search:
        conditions.append(func.lower(Campaign.name).like(f"%{search.lower()}%"))

    base = select(Campaign).join(Client, Campaign.client_id == Client.id).where(and_(*conditions))

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0

    result = await db.execute(
        base.options(selectinload(Campaign.client))
        .order_by(Campaign.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    campaigns = list(result.scalars().all())

    metrics = await _aggregate_recent_metrics(db, [c.id for c in campaigns])
    empty = {
        "impressions": 0, "clicks": 0, "cost": 0.0, "conversions": 0.0,
        "conversion_value": 0.0, "ctr": 0.0, "cpc": 0.0, "cpa": 0.0, "roas": 0.0,
    }
    return [{"campaign": c, "metrics": metrics.get(c.id, empty)} for c in campaigns], total


async def create_campaign(
    db: AsyncSession,
    manager: User,
    client_id: str,
    name: str,
    google_campaign_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    **kwargs,
) -> Campaign:
    """
    Create a campaign for one of the manager's clients.

    Campaigns created by hand get a MANUAL-<timestamp> external id.
    """
    client = (
        await db.execute(
            select(Client).where(Client.id == client_id, Client.manager_id == manager.id)
        )
    ).scalar_one_or_none()
    if client is None:
        raise NotFoundError("Client not found")

    if not google_campaign_id:
        google_campaign_id = f"MANUAL-{int(datetime.now(timezone.utc).timestamp() * 1000)}"

    duplicate = await db.execute(
        select(Campaign.id).where(Campaign.google_campaign_id == google_campaign_id)
    )
    if duplicate.first() is not None:
        raise AppError("A campaign with this Google Ads id already exists")

    campaign = Campaign(
        client=client,
        created_by_id=manager.id,
        google_campaign_id=google_campaign_id,
        name=name,
        **{k: v for k, v in kwargs.items() if k in CAMPAIGN_TRACKED_FIELDS and v is not None},
    )
    db.add(campaign)
    await db.flush()

    await history_service.log_campaign_change(
        db,
        campaign,
        HistoryActions.CREATE,
        user_id=manager.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    logger.info(
        "campaign_created",
        campaign_id=campaign.id,
        client_id=client.id,
        google_campaign_id=google_campaign_id,
    )
    return campaign


async def update_campaign(
    db: AsyncSession,
    manager: User,
    campaign: Campaign,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    **kwargs,
) -> Campaign:
    """
    Update a campaign.

    Budget and target changes get their own history entries with the
    variation; everything else is logged as one campaign update.
    """
    if "google_campaign_id" in kwargs:
        new_external_id = kwargs.pop("google_campaign_id")
        if new_external_id and new_external_id != campaign.google_campaign_id:
            duplicate = await db.execute(
                select(Campaign.id).where(Campaign.google_campaign_id == new_external_id)
            )
            if duplicate.first() is not None:
                raise AppError("A campaign with this Google Ads id already exists")
            campaign.google_campaign_id = new_external_id

    old_values = {field: getattr(campaign, field) for field in CAMPAIGN_TRACKED_FIELDS}
    for field, value in kwargs.items():
        if field in CAMPAIGN_TRACKED_FIELDS:
            setattr(campaign, field, value)
    new_values = {field: getattr(campaign, field) for field in CAMPAIGN_TRACKED_FIELDS}

    changes = history_service.detect_changes(old_values, new_values)
    changed_fields = {change["field"] for change in changes}

    for field in ("budget_daily", "budget_total"):
        if field in changed_fields:
            await history_service.log_budget_change(
                db, campaign, old_values[field], new_values[field],
                user_id=manager.id, field=field,
                ip_address=ip_address, user_agent=user_agent,
            )
    for field in ("target_roas", "target_cpa"):
        if field in changed_fields:
            await history_service.log_target_change(
                db, campaign, field, old_values[field], new_values[field],
                user_id=manager.id, ip_address=ip_address, user_agent=user_agent,
            )

    other_fields = [
        f for f in CAMPAIGN_TRACKED_FIELDS
        if f not in ("budget_daily", "budget_total", "target_roas", "target_cpa")
    ]
    await history_service.log_campaign_change(
        db,
        campaign,
        HistoryActions.UPDATE,
        user_id=manager.id,
        old_values=old_values,
        new_values=new_values,
        tracked_fields=other_fields,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    await db.commit()

    logger.info("campaign_updated", campaign_id=campaign.id, fields=sorted(changed_fields))
    return campaign


async def delete_campaign(
    db: AsyncSession,
    manager: User,
    campaign: Campaign,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Delete a campaign and everything attached to it."""
    await history_service.log_campaign_change(
        db,
        campaign,
        HistoryActions.DELETE,
        user_id=manager.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.delete(campaign)
    await db.commit()

    logger.info("campaign_deleted", campaign_id=campaign.id, manager_id=manager.id)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_asset_group(group: AssetGroup) -> dict[str, Any]:
    return {
        "id": group.id,
        "campaign_id": group.campaign_id,
        "google_asset_group_id": group.google_asset_group_id,
        "name": group.name,
        "status": group.status,
        "final_url": group.final_url,
        "path1": group.path1,
        "path2": group.path2,
        "headlines": group.headlines or [],
        "long_headlines": group.long_headlines or [],
        "descriptions": group.descriptions or [],
        "images": group.images or [],
        "logos": group.logos or [],
        "videos": group.videos or [],
        "ad_strength": group.ad_strength,
        "impressions": group.impressions,
        "clicks": group.clicks,
        "cost": group.cost,
        "conversions": group.conversions,
        "conversion_value": group.conversion_value,
        **CampaignMetric.calculate_derived_metrics(
            group.impressions, group.clicks, group.cost, group.conversions, group.conversion_value
        ),
    }


def serialize_campaign(
    campaign: Campaign,
    metrics: Optional[dict[str, Any]] = None,
    asset_groups: Optional[list[AssetGroup]] = None,
) -> dict[str, Any]:
    """Campaign as returned by the API; the client must be loaded."""
    data = {
        "id": campaign.id,
        "client_id": campaign.client_id,
        "client": {
            "id": campaign.client.id,
            "name": campaign.client.name,
            "company": campaign.client.company,
        } if campaign.client else None,
        "google_campaign_id": campaign.google_campaign_id,
        "name": campaign.name,
        "status": campaign.status,
        "budget_daily": campaign.budget_daily,
        "budget_total": campaign.budget_total,
        "target_roas": campaign.target_roas,
        "target_cpa": campaign.target_cpa,
        "bidding_strategy": campaign.bidding_strategy,
        "start_date": _iso(campaign.start_date),
        "end_date": _iso(campaign.end_date),
        "final_url": campaign.final_url,
        "last_sync_at": _iso(campaign.last_sync_at),
        "created_at": _iso(campaign.created_at),
        "updated_at": _iso(campaign.updated_at),
    }
    if metrics is not None:
        data["metrics"] = metrics
    if asset_groups is not None:
        data["asset_groups"] = [serialize_asset_group(g) for g in asset_groups]
    return data
