"""
Metrics Service

Campaign performance data:
- Syncing daily metrics from Google Ads, or simulated data for campaigns
  without a linked account
- Daily series with a period summary
- Today vs yesterday comparison and budget progress
- Dashboard totals over every visible campaign
- Asset group, search term and listing group breakdowns
"""

import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters import AdapterError, MetricsRow, get_adapter
from app.config import settings
from app.core.security import decrypt_token
from app.models import (
    Alert,
    AssetGroup,
    Campaign,
    CampaignMetric,
    Client,
    HistoryActions,
    HistoryEntities,
    ListingGroup,
    SearchTerm,
    User,
)
from app.services import history_service
from app.services.campaign_service import campaign_scope_condition

logger = structlog.get_logger()

SIMULATED_SEARCH_TERMS = [
    "comprar tênis online",
    "tênis corrida masculino",
    "loja de roupas esportivas",
    "tênis feminino promoção",
    "camiseta dry fit",
    "mochila esportiva",
    "bermuda academia",
    "frete grátis roupas",
    "tênis para caminhada",
    "conjunto fitness feminino",
    "meia esportiva kit",
    "jaqueta corta vento",
]

SIMULATED_LISTING_GROUPS = [
    ("brand", "Marca Própria"),
    ("brand", "Nike"),
    ("brand", "Adidas"),
    ("product_type", "Calçados"),
    ("product_type", "Vestuário"),
    ("product_type", "Acessórios"),
]


def percent_change(current: float, previous: float) -> float:
    """Percent variation from previous to current, 0 when there is no baseline."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def summarize_metrics(rows: Iterable[Any]) -> dict[str, Any]:
    """
    Sum raw counters over rows and derive CTR, CPC, CPA and ROAS.

    Rows only need the raw counter attributes, so ORM rows, adapter
    MetricsRow objects and breakdown rows all work.
    """
    impressions = clicks = 0
    cost = conversions = conversion_value = 0.0
    for row in rows:
        impressions += row.impressions or 0
        clicks += row.clicks or 0
        cost += row.cost or 0.0
        conversions += row.conversions or 0.0
        conversion_value += row.conversion_value or 0.0

    return {
        "impressions": impressions,
        "clicks": clicks,
        "cost": round(cost, 2),
        "conversions": round(conversions, 2),
        "conversion_value": round(conversion_value, 2),
        **CampaignMetric.calculate_derived_metrics(
            impressions, clicks, cost, conversions, conversion_value
        ),
    }


# =============================================================================
# Google Ads access
# =============================================================================

def get_refresh_token(client: Client) -> Optional[str]:
    """Decrypted Google Ads refresh token of a client, if usable."""
    if not (settings.google_ads_configured and client.has_google_ads):
        return None
    return decrypt_token(client.google_ads_refresh_token)


# =============================================================================
# Simulated data
# =============================================================================

def simulate_daily_metrics(campaign: Campaign, start_date: date, end_date: date) -> list[dict]:
    """Plausible daily metrics around the campaign's daily budget."""
    budget = float(campaign.budget_daily or 100)
    rows = []
    day = start_date
    while day <= end_date:
        cost = budget * random.uniform(0.7, 1.1)
        cpc = random.uniform(0.8, 2.5)
        clicks = max(int(cost / cpc), 1)
        ctr = random.uniform(1.5, 4.5)
        impressions = int(clicks / ctr * 100)
        conversions = round(clicks * random.uniform(0.02, 0.06), 2)
        conversion_value = round(conversions * random.uniform(80, 200), 2)
        rows.append({
            "date": day,
            "impressions": impressions,
            "clicks": clicks,
            "cost": round(cost, 2),
            "conversions": conversions,
            "conversion_value": conversion_value,
            "search_impression_share": round(random.uniform(0.4, 0.8), 4),
            "search_budget_lost_is": round(random.uniform(0.05, 0.3), 4),
            "search_rank_lost_is": round(random.uniform(0.05, 0.3), 4),
        })
        day += timedelta(days=1)
    return rows


# =============================================================================
# Sync
# =============================================================================

async def upsert_daily_metrics(
    db: AsyncSession, campaign_id: str, rows: list[dict]
) -> int:
    """
    Insert or update one metric row per (campaign, date).

    Returns:
        Number of rows written
    """
    if not rows:
        return 0

    dates = [row["date"] for row in rows]
    result = await db.execute(
        select(CampaignMetric).where(
            CampaignMetric.campaign_id == campaign_id,
            CampaignMetric.date.in_(dates),
        )
    )
    existing = {metric.date: metric for metric in result.scalars().all()}

    for row in rows:
        values = dict(row)
        values.update(
            CampaignMetric.calculate_derived_metrics(
                values["impressions"],
                values["clicks"],
                values["cost"],
                values["conversions"],
                values["conversion_value"],
            )
        )
        metric = existing.get(values["date"])
        if metric is None:
            db.add(CampaignMetric(campaign_id=campaign_id, **values))
        else:
            for field, value in values.items():
                setattr(metric, field, value)

    await db.flush()
    return len(rows)


async def _fetch_google_metrics(
    campaign: Campaign, refresh_token: str, start_date: date, end_date: date
) -> list[dict]:
    adapter = get_adapter()
    customer_id = campaign.client.google_ads_customer_id

    daily = await adapter.get_daily_metrics(
        refresh_token, customer_id, campaign.google_campaign_id, start_date, end_date
    )
    share = await adapter.get_impression_share(
        refresh_token, customer_id, campaign.google_campaign_id, start_date, end_date
    )

    rows = [
        {
            "date": row.date,
            "impressions": row.impressions,
            "clicks": row.clicks,
            "cost": round(row.cost, 2),
            "conversions": round(row.conversions, 2),
            "conversion_value": round(row.conversion_value, 2),
        }
        for row in daily
    ]
    # Impression share is reported for the whole range, keep it on the latest day
    if rows:
        rows[-1].update(
            search_impression_share=share.search_impression_share,
            search_budget_lost_is=share.search_budget_lost_impression_share,
            search_rank_lost_is=share.search_rank_lost_impression_share,
        )
    return rows


async def sync_campaign_metrics(
    db: AsyncSession,
    campaign: Campaign,
    user_id: Optional[str] = None,
    days: int = 30,
) -> dict[str, Any]:
    """
    Pull the last `days` of metrics for a campaign.

    Falls back to simulated data when the client has no usable Google Ads
    connection or the API call fails. `campaign.client` must be loaded.
    """
    end_date = date.today()
    start_date = end_date - timedelta(days=days - 1)

    source = "simulated"
    rows: list[dict] = []
    refresh_token = get_refresh_token(campaign.client)
    if refresh_token:
        try:
            rows = await _fetch_google_metrics(campaign, refresh_token, start_date, end_date)
            source = "google_ads"
        except AdapterError as e:
            logger.warning(
                "metrics_sync_google_failed",
                campaign_id=campaign.id,
                error=e.message,
            )

    if source == "simulated":
        rows = simulate_daily_metrics(campaign, start_date, end_date)

    written = await upsert_daily_metrics(db, campaign.id, rows)
    campaign.last_sync_at = datetime.now(timezone.utc)

    await history_service.log_change(
        db,
        action=HistoryActions.SYNC,
        entity_type=HistoryEntities.CAMPAIGN,
        user_id=user_id,
        campaign_id=campaign.id,
        entity_id=campaign.id,
        entity_name=campaign.name,
        extra_data={"source": source, "days": written},
    )
    await db.commit()

    logger.info(
        "campaign_metrics_synced",
        campaign_id=campaign.id,
        source=source,
        days=written,
    )
    return {
        "campaign_id": campaign.id,
        "source": source,
        "days_synced": written,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "last_sync_at": campaign.last_sync_at.isoformat(),
    }


# =============================================================================
# Queries
# =============================================================================

async def get_metric_rows(
    db: AsyncSession, campaign_id: str, start_date: date, end_date: date
) -> list[CampaignMetric]:
    result = await db.execute(
        select(CampaignMetric)
        .where(
            CampaignMetric.campaign_id == campaign_id,
            CampaignMetric.date >= start_date,
            CampaignMetric.date <= end_date,
        )
        .order_by(CampaignMetric.date)
    )
    return list(result.scalars().all())


async def get_daily_metrics(
    db: AsyncSession,
    campaign_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    days: int = 30,
) -> dict[str, Any]:
    """Daily series of a campaign with the period summary."""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=days - 1)

    rows = await get_metric_rows(db, campaign_id, start_date, end_date)
    return {
        "daily": [row.to_dict() for row in rows],
        "summary": summarize_metrics(rows),
        "period": {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "days": (end_date - start_date).days + 1,
        },
    }


async def get_realtime_metrics(db: AsyncSession, campaign: Campaign) -> dict[str, Any]:
    """Today vs yesterday, with budget consumption."""
    today = date.today()
    yesterday = today - timedelta(days=1)
    rows = {row.date: row for row in await get_metric_rows(db, campaign.id, yesterday, today)}

    current = summarize_metrics([rows[today]] if today in rows else [])
    previous = summarize_metrics([rows[yesterday]] if yesterday in rows else [])

    budget = float(campaign.budget_daily or 0)
    return {
        "campaign_id": campaign.id,
        "today": current,
        "yesterday": previous,
        "changes": {
            key: percent_change(current[key], previous[key])
            for key in ("impressions", "clicks", "cost", "conversions", "ctr", "roas")
        },
        "budget": {
            "daily": budget,
            "spent": current["cost"],
            "remaining": round(max(budget - current["cost"], 0), 2),
            "progress": round(current["cost"] / budget * 100, 2) if budget else 0.0,
        },
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


async def get_dashboard_summary(db: AsyncSession, user: User, days: int = 30) -> dict[str, Any]:
    """Totals and per-campaign breakdown over every campaign the user can see."""
    since = date.today() - timedelta(days=days - 1)

    campaigns_result = await db.execute(
        select(Campaign)
        .join(Client, Campaign.client_id == Client.id)
        .where(campaign_scope_condition(user))
        .order_by(Campaign.name)
    )
    campaigns = list(campaigns_result.scalars().all())
    campaign_ids = [c.id for c in campaigns]

    per_campaign: dict[str, list[CampaignMetric]] = {cid: [] for cid in campaign_ids}
    if campaign_ids:
        rows = await db.execute(
            select(CampaignMetric).where(
                CampaignMetric.campaign_id.in_(campaign_ids),
                CampaignMetric.date >= since,
            )
        )
        for metric in rows.scalars().all():
            per_campaign[metric.campaign_id].append(metric)

    unread_alerts = 0
    if user.is_manager or campaign_ids:
        if user.is_manager:
            alert_condition = Alert.user_id == user.id
        else:
            alert_condition = Alert.campaign_id.in_(campaign_ids)
        unread_alerts = (
            await db.execute(
                select(func.count(Alert.id)).where(
                    and_(alert_condition, Alert.is_read.is_(False))
                )
            )
        ).scalar() or 0

    all_rows = [row for rows in per_campaign.values() for row in rows]
    return {
        "period_days": days,
        "totals": summarize_metrics(all_rows),
        "campaigns": [
            {
                "id": c.id,
                "name": c.name,
                "status": c.status,
                "budget_daily": c.budget_daily,
                "target_roas": c.target_roas,
                "metrics": summarize_metrics(per_campaign[c.id]),
            }
            for c in campaigns
        ],
        "campaign_count": len(campaigns),
        "active_campaigns": sum(1 for c in campaigns if c.status == "ENABLED"),
        "unread_alerts": unread_alerts,
    }


# =============================================================================
# Breakdowns
# =============================================================================

async def get_asset_groups(db: AsyncSession, campaign: Campaign) -> list[AssetGroup]:
    """Asset groups of a campaign, pulled from Google Ads or seeded when empty."""
    result = await db.execute(
        select(AssetGroup).where(AssetGroup.campaign_id == campaign.id).order_by(AssetGroup.name)
    )
    groups = list(result.scalars().all())
    if groups:
        return groups

    refresh_token = get_refresh_token(campaign.client)
    if refresh_token:
        end_date = date.today()
        start_date = end_date - timedelta(days=29)
        try:
            remote = await get_adapter().list_asset_groups(
                refresh_token,
                campaign.client.google_ads_customer_id,
                campaign.google_campaign_id,
                start_date,
                end_date,
            )
        except AdapterError as e:
            logger.warning("asset_groups_fetch_failed", campaign_id=campaign.id, error=e.message)
            remote = []
        for info in remote:
            metrics = info.metrics or MetricsRow(campaign_id=campaign.id)
            groups.append(AssetGroup(
                campaign_id=campaign.id,
                google_asset_group_id=info.asset_group_id,
                name=info.name,
                status=info.status,
                final_url=info.final_urls[0] if info.final_urls else None,
                path1=info.path1,
                path2=info.path2,
                ad_strength=info.ad_strength,
                impressions=metrics.impressions,
                clicks=metrics.clicks,
                cost=metrics.cost,
                conversions=metrics.conversions,
                conversion_value=metrics.conversion_value,
            ))

    if not groups:
        groups = [
            AssetGroup(
                campaign_id=campaign.id,
                name=name,
                status="ENABLED",
                final_url=campaign.final_url,
                headlines=headlines,
                descriptions=["Frete grátis para todo o Brasil", "Parcele em até 10x sem juros"],
                ad_strength=strength,
                impressions=random.randint(5000, 50000),
                clicks=random.randint(100, 1500),
                cost=round(random.uniform(200, 2000), 2),
                conversions=round(random.uniform(5, 80), 2),
                conversion_value=round(random.uniform(1000, 12000), 2),
            )
            for name, headlines, strength in (
                ("Produtos em Destaque", ["Ofertas Imperdíveis", "Compre Agora"], "GOOD"),
                ("Lançamentos", ["Novidades da Semana", "Coleção Nova"], "AVERAGE"),
            )
        ]

    db.add_all(groups)
    await db.commit()
    return groups


async def get_search_terms(
    db: AsyncSession, campaign: Campaign, days: int = 7, limit: int = 50
) -> dict[str, Any]:
    """Search terms of the last days ordered by clicks, with a summary."""
    end_date = date.today()
    start_date = end_date - timedelta(days=days - 1)

    async def load() -> list[SearchTerm]:
        result = await db.execute(
            select(SearchTerm)
            .where(SearchTerm.campaign_id == campaign.id, SearchTerm.date >= start_date)
            .order_by(SearchTerm.clicks.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    terms = await load()
    if not terms:
        await _store_search_terms(db, campaign, start_date, end_date, limit)
        terms = await load()

    return {
        "search_terms": [
            {
                "id": t.id,
                "search_term": t.search_term,
                "match_type": t.match_type,
                "status": t.status,
                "date": t.date.isoformat(),
                "impressions": t.impressions,
                "clicks": t.clicks,
                "cost": t.cost,
                "conversions": t.conversions,
                "conversion_value": t.conversion_value,
                **CampaignMetric.calculate_derived_metrics(
                    t.impressions, t.clicks, t.cost, t.conversions, t.conversion_value
                ),
            }
            for t in terms
        ],
        "summary": {**summarize_metrics(terms), "total_terms": len(terms)},
        "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
    }


async def _store_search_terms(
    db: AsyncSession, campaign: Campaign, start_date: date, end_date: date, limit: int
) -> None:
    refresh_token = get_refresh_token(campaign.client)
    rows: list[SearchTerm] = []
    if refresh_token:
        try:
            remote = await get_adapter().list_search_terms(
                refresh_token,
                campaign.client.google_ads_customer_id,
                campaign.google_campaign_id,
                start_date,
                end_date,
                limit,
            )
            rows = [
                SearchTerm(
                    campaign_id=campaign.id,
                    date=end_date,
                    search_term=t.search_term,
                    status=t.status,
                    impressions=t.impressions,
                    clicks=t.clicks,
                    cost=round(t.cost, 2),
                    conversions=t.conversions,
                    conversion_value=t.conversion_value,
                )
                for t in remote
            ]
        except AdapterError as e:
            logger.warning("search_terms_fetch_failed", campaign_id=campaign.id, error=e.message)

    if not rows:
        for term in SIMULATED_SEARCH_TERMS:
            clicks = random.randint(5, 200)
            conversions = round(clicks * random.uniform(0.01, 0.08), 2)
            rows.append(SearchTerm(
                campaign_id=campaign.id,
                date=end_date - timedelta(days=random.randint(0, (end_date - start_date).days)),
                search_term=term,
                match_type="BROAD",
                status="NONE",
                impressions=clicks * random.randint(15, 60),
                clicks=clicks,
                cost=round(clicks * random.uniform(0.8, 2.5), 2),
                conversions=conversions,
                conversion_value=round(conversions * random.uniform(80, 200), 2),
            ))

    db.add_all(rows)
    await db.commit()


async def get_listing_groups(db: AsyncSession, campaign: Campaign) -> dict[str, Any]:
    """Listing groups of a campaign ordered by conversions, with a summary."""

    async def load() -> list[ListingGroup]:
        result = await db.execute(
            select(ListingGroup)
            .where(ListingGroup.campaign_id == campaign.id)
            .order_by(ListingGroup.conversions.desc())
        )
        return list(result.scalars().all())

    groups = await load()
    if not groups:
        db.add_all([
            ListingGroup(
                campaign_id=campaign.id,
                dimension=dimension,
                value=value,
                impressions=random.randint(2000, 40000),
                clicks=random.randint(50, 1200),
                cost=round(random.uniform(100, 1500), 2),
                conversions=round(random.uniform(2, 60), 2),
                conversion_value=round(random.uniform(500, 9000), 2),
            )
            for dimension, value in SIMULATED_LISTING_GROUPS
        ])
        await db.commit()
        groups = await load()

    return {
        "listing_groups": [
            {
                "id": g.id,
                "asset_group_id": g.asset_group_id,
                "dimension": g.dimension,
                "value": g.value,
                "impressions": g.impressions,
                "clicks": g.clicks,
                "cost": g.cost,
                "conversions": g.conversions,
                "conversion_value": g.conversion_value,
                **CampaignMetric.calculate_derived_metrics(
                    g.impressions, g.clicks, g.cost, g.conversions, g.conversion_value
                ),
            }
            for g in groups
        ],
        "summary": {**summarize_metrics(groups), "total_groups": len(groups)},
    }
