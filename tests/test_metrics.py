"""
Tests for derived metrics, sync and the metric read endpoints.
"""

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from app.models import CampaignMetric, ChangeHistory
from app.services.metrics_service import percent_change, summarize_metrics


def metric(campaign_id: str, day: date, **values) -> CampaignMetric:
    raw = {
        "impressions": 10000,
        "clicks": 300,
        "cost": 100.0,
        "conversions": 10.0,
        "conversion_value": 400.0,
    }
    raw.update(values)
    return CampaignMetric(
        campaign_id=campaign_id,
        date=day,
        **raw,
        **CampaignMetric.calculate_derived_metrics(**raw),
    )


def test_derived_metrics_without_volume_are_zero():
    derived = CampaignMetric.calculate_derived_metrics(0, 0, 0.0, 0.0, 0.0)
    assert derived == {"ctr": 0.0, "cpc": 0.0, "cpa": 0.0, "roas": 0.0}


def test_derived_metrics():
    derived = CampaignMetric.calculate_derived_metrics(2000, 50, 100.0, 4.0, 450.0)
    assert derived["ctr"] == 2.5
    assert derived["cpc"] == 2.0
    assert derived["cpa"] == 25.0
    assert derived["roas"] == 4.5


def test_summarize_metrics_recomputes_ratios():
    rows = [
        SimpleNamespace(impressions=1000, clicks=10, cost=20.0, conversions=1.0, conversion_value=50.0),
        SimpleNamespace(impressions=3000, clicks=30, cost=60.0, conversions=3.0, conversion_value=270.0),
    ]
    summary = summarize_metrics(rows)
    assert summary["impressions"] == 4000
    assert summary["cost"] == 80.0
    assert summary["ctr"] == 1.0
    assert summary["roas"] == 4.0


def test_percent_change_without_baseline():
    assert percent_change(10, 0) == 0.0
    assert percent_change(15, 10) == 50.0
    assert percent_change(5, 10) == -50.0


@pytest.mark.anyio
async def test_sync_without_google_ads_uses_simulated_data(
    http_client, session_factory, campaign, manager_headers
):
    response = await http_client.post(
        f"/api/v1/campaigns/{campaign.id}/sync",
        headers=manager_headers,
        json={"days": 7},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "simulated"
    assert data["days_synced"] == 7
    assert data["last_sync_at"]

    # A second sync rewrites the same days
    await http_client.post(
        f"/api/v1/campaigns/{campaign.id}/sync",
        headers=manager_headers,
        json={"days": 7},
    )

    async with session_factory() as session:
        count = (
            await session.execute(
                select(func.count(CampaignMetric.id)).where(
                    CampaignMetric.campaign_id == campaign.id
                )
            )
        ).scalar()
        assert count == 7

        syncs = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.action == "SYNC")
            )
        ).scalars().all()
        assert len(syncs) == 2
        assert syncs[0].extra_data["source"] == "simulated"


@pytest.mark.anyio
async def test_client_user_cannot_sync(http_client, campaign, client_headers):
    response = await http_client.post(
        f"/api/v1/campaigns/{campaign.id}/sync", headers=client_headers
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_daily_metrics(http_client, db, campaign, client_headers):
    today = date.today()
    db.add_all([metric(campaign.id, today - timedelta(days=i)) for i in range(3)])
    await db.commit()

    response = await http_client.get(
        f"/api/v1/metrics/campaigns/{campaign.id}/daily",
        headers=client_headers,
        params={"days": 7},
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["daily"]) == 3
    assert data["daily"][0]["date"] == (today - timedelta(days=2)).isoformat()
    assert data["summary"]["cost"] == 300.0
    assert data["summary"]["roas"] == 4.0
    assert data["period"]["days"] == 7


@pytest.mark.anyio
async def test_realtime_metrics(http_client, db, campaign, manager_headers):
    today = date.today()
    db.add_all([
        metric(campaign.id, today, cost=50.0, clicks=200),
        metric(campaign.id, today - timedelta(days=1), cost=100.0, clicks=100),
    ])
    await db.commit()

    response = await http_client.get(
        f"/api/v1/metrics/campaigns/{campaign.id}/realtime", headers=manager_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["today"]["cost"] == 50.0
    assert data["changes"]["cost"] == -50.0
    assert data["changes"]["clicks"] == 100.0
    assert data["budget"] == {"daily": 100.0, "spent": 50.0, "remaining": 50.0, "progress": 50.0}


@pytest.mark.anyio
async def test_dashboard_requires_auth(http_client):
    response = await http_client.get("/api/v1/metrics/dashboard")
    assert response.status_code == 401
