"""
Metrics Sync Worker

Pulls daily metrics for every enabled campaign of an active client.

Sync Strategy:
- Runs every 6 hours via cron
- Re-fetches the last SYNC_LOOKBACK_DAYS days and upserts them, since
  Google Ads restates conversions for recent days
- Campaigns of clients without a Google Ads connection get simulated data
"""

import time

import structlog
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.core.database import get_db_context
from app.models import Campaign, Client
from app.services import metrics_service

logger = structlog.get_logger()

SYNC_LOOKBACK_DAYS = 7


async def sync_all_metrics(ctx: dict) -> dict:
    """
    Sync metrics of all enabled campaigns.

    Args:
        ctx: arq context

    Returns:
        Summary dict with sync statistics
    """
    logger.info("metrics_sync_job_started")
    started = time.monotonic()

    synced = 0
    simulated = 0
    errors = 0

    async with get_db_context() as db:
        result = await db.execute(
            select(Campaign)
            .join(Client, Campaign.client_id == Client.id)
            .where(Campaign.status == "ENABLED", Client.is_active.is_(True))
            .options(selectinload(Campaign.client))
        )
        campaigns = list(result.scalars().all())

        for campaign in campaigns:
            campaign_id = campaign.id
            try:
                outcome = await metrics_service.sync_campaign_metrics(
                    db, campaign, days=SYNC_LOOKBACK_DAYS
                )
                synced += 1
                if outcome["source"] == "simulated":
                    simulated += 1
            except Exception as e:
                await db.rollback()
                errors += 1
                logger.error("campaign_metrics_sync_failed", campaign_id=campaign_id, error=str(e))

    summary = {
        "campaigns": len(campaigns),
        "synced": synced,
        "simulated": simulated,
        "errors": errors,
        "duration_ms": int((time.monotonic() - started) * 1000),
    }
    logger.info("metrics_sync_job_completed", **summary)
    return summary
