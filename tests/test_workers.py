"""
Tests for the arq background jobs.
"""

import pytest
from sqlalchemy import func, select

from app.models import CampaignMetric
from app.workers.metrics_sync import SYNC_LOOKBACK_DAYS, sync_all_metrics
from app.workers.alerts_worker import run_alert_analysis
from app.workers.settings import redis_settings_from_url


def test_redis_settings_from_url():
    settings = redis_settings_from_url("redis://:secret@cache:6380/2")
    assert settings.host == "cache"
    assert settings.port == 6380
    assert settings.password == "secret"
    assert settings.database == 2


def test_redis_settings_defaults():
    settings = redis_settings_from_url("redis://")
    assert settings.host == "localhost"
    assert settings.port == 6379
    assert settings.database == 0


@pytest.mark.anyio
async def test_sync_all_metrics_simulates_unconnected_clients(session_factory, campaign, other_campaign):
    summary = await sync_all_metrics({})

    assert summary["campaigns"] == 2
    assert summary["synced"] == 2
    assert summary["simulated"] == 2
    assert summary["errors"] == 0

    async with session_factory() as session:
        count = await session.scalar(
            select(func.count(CampaignMetric.id)).where(CampaignMetric.campaign_id == campaign.id)
        )
    assert count == SYNC_LOOKBACK_DAYS


@pytest.mark.anyio
async def test_alert_analysis_job_skips_email_without_provider(session_factory, campaign):
    summary = await run_alert_analysis({})
    assert summary["campaigns_analyzed"] == 1
    assert summary["summaries_sent"] == 0
