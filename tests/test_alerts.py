"""
Tests for the alert detectors, campaign analysis and the alert lifecycle.
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from app.models import Alert, AlertPriority, AlertTypes, CampaignMetric, ChatMessage
from app.services import alerts_service
from app.services.alerts_service import (
    detect_budget_loss,
    detect_burn_rate,
    detect_ctr_decline,
    detect_high_cpa,
    detect_ranking_loss,
    detect_roas_drop,
    determine_priority,
)


# =============================================================================
# Detectors
# =============================================================================

def test_roas_drop_threshold_boundary():
    # Exactly -20% does not trigger, anything beyond does
    assert detect_roas_drop(4.0, 5.0, threshold=20) is None
    evaluation = detect_roas_drop(3.9, 5.0, threshold=20)
    assert evaluation.alert_type == AlertTypes.ROAS_DROP
    assert evaluation.priority == AlertPriority.MEDIUM
    assert evaluation.data["drop_percent"] == 22.0


def test_roas_drop_ignores_missing_values():
    assert detect_roas_drop(0, 5.0) is None
    assert detect_roas_drop(3.0, None) is None


def test_high_cpa_threshold_value():
    assert detect_high_cpa(60.0, 50.0, threshold=20) is None
    evaluation = detect_high_cpa(75.0, 50.0, threshold=20)
    assert evaluation.alert_type == AlertTypes.CPA_INCREASE
    assert evaluation.threshold_value == 60.0
    assert evaluation.previous_value == 50.0
    assert evaluation.priority == AlertPriority.CRITICAL


def test_high_cpa_without_target():
    assert detect_high_cpa(75.0, None) is None


def test_impression_share_fractions_are_percentages():
    assert detect_budget_loss(0.39, threshold=40) is None
    evaluation = detect_budget_loss(0.45, threshold=40)
    assert evaluation.current_value == 45.0
    assert evaluation.priority == AlertPriority.HIGH

    assert detect_ranking_loss(49.0, threshold=50) is None
    assert detect_ranking_loss(50.0, threshold=50).priority == AlertPriority.HIGH
    assert detect_ranking_loss(None) is None


def test_ctr_decline_needs_consecutive_drops():
    # Most recent first: 2.0 <- 2.5 <- 3.0 are two drops of more than 10%
    evaluation = detect_ctr_decline([2.0, 2.5, 3.0], weeks=3, min_drop=10)
    assert evaluation.alert_type == AlertTypes.CTR_DECLINE
    assert evaluation.data["consecutive_drops"] == 3
    assert evaluation.threshold_value == 10

    # The middle week barely moved
    assert detect_ctr_decline([2.0, 2.9, 3.0], weeks=3, min_drop=10) is None
    assert detect_ctr_decline([2.0, 2.5], weeks=3, min_drop=10) is None


def test_burn_rate_priorities():
    today = date(2026, 4, 15)  # half of a 30 day month
    # Monthly budget 3040, expected spend 1520
    assert detect_burn_rate(100.0, 1520.0, today=today, threshold=1.3) is None

    high = detect_burn_rate(100.0, 1520.0 * 1.35, today=today, threshold=1.3)
    assert high.priority == AlertPriority.HIGH
    assert high.data["expected_spend"] == 1520.0

    critical = detect_burn_rate(100.0, 1520.0 * 1.6, today=today, threshold=1.3)
    assert critical.priority == AlertPriority.CRITICAL

    assert detect_burn_rate(None, 500.0, today=today) is None


def test_determine_priority_scales():
    assert determine_priority(AlertTypes.ROAS_DROP, 10) == AlertPriority.LOW
    assert determine_priority(AlertTypes.ROAS_DROP, -35) == AlertPriority.HIGH
    assert determine_priority(AlertTypes.BUDGET_LOSS, 39) == AlertPriority.MEDIUM
    assert determine_priority(AlertTypes.BUDGET_LOSS, 60) == AlertPriority.CRITICAL


# =============================================================================
# Analysis
# =============================================================================

async def add_two_weeks(db, campaign_id: str, current_value: float, previous_value: float):
    today = date.today()
    rows = []
    for offset in range(14):
        conversion_value = current_value if offset < 7 else previous_value
        raw = {
            "impressions": 10000,
            "clicks": 300,
            "cost": 100.0,
            "conversions": 10.0,
            "conversion_value": conversion_value,
        }
        rows.append(
            CampaignMetric(
                campaign_id=campaign_id,
                date=today - timedelta(days=offset),
                **raw,
                **CampaignMetric.calculate_derived_metrics(**raw),
            )
        )
    db.add_all(rows)
    await db.commit()


@pytest.mark.anyio
async def test_analyze_twice_creates_one_alert(http_client, db, session_factory, campaign, manager, manager_headers):
    await add_two_weeks(db, campaign.id, current_value=200.0, previous_value=500.0)

    with patch(
        "app.services.alerts_service.dispatch_alert", new_callable=AsyncMock
    ) as dispatch:
        first = await http_client.post(
            f"/api/v1/alerts/analyze/{campaign.id}", headers=manager_headers
        )
        second = await http_client.post(
            f"/api/v1/alerts/analyze/{campaign.id}", headers=manager_headers
        )

    assert first.status_code == 200
    assert first.json()["alerts_created"] == 1
    assert first.json()["alerts"][0]["alert_type"] == AlertTypes.ROAS_DROP
    assert first.json()["alerts"][0]["priority"] == AlertPriority.CRITICAL

    assert second.json()["alerts_created"] == 0
    assert second.json()["alerts_existing"] == 1
    assert dispatch.await_count == 1

    async with session_factory() as session:
        alerts = (await session.execute(select(Alert))).scalars().all()
    assert len(alerts) == 1
    assert alerts[0].user_id == manager.id


@pytest.mark.anyio
async def test_new_alert_is_posted_to_chat(db, session_factory, campaign, manager):
    await add_two_weeks(db, campaign.id, current_value=200.0, previous_value=500.0)

    async with session_factory() as session:
        result = await alerts_service.analyze_campaign(session, campaign.id)
    assert result["alerts_created"] == 1

    async with session_factory() as session:
        alert = (await session.execute(select(Alert))).scalar_one()
        message = (await session.execute(select(ChatMessage))).scalar_one()
    assert alert.chat_sent is True
    assert alert.email_sent is False
    assert message.message_type == "ALERT"
    assert message.sender_id == manager.id
    assert message.data["alert_id"] == alert.id


@pytest.mark.anyio
async def test_stable_campaign_has_no_alerts(db, session_factory, campaign):
    await add_two_weeks(db, campaign.id, current_value=400.0, previous_value=400.0)

    async with session_factory() as session:
        result = await alerts_service.analyze_campaign(session, campaign.id, dispatch=False)
    assert result["alerts_created"] == 0
    assert result["alerts"] == []


@pytest.mark.anyio
async def test_client_user_cannot_run_analysis(http_client, campaign, client_headers):
    response = await http_client.post(
        f"/api/v1/alerts/analyze/{campaign.id}", headers=client_headers
    )
    assert response.status_code == 403


# =============================================================================
# Lifecycle
# =============================================================================

@pytest.fixture
async def alert(db, campaign, manager):
    alert = Alert(
        campaign_id=campaign.id,
        user_id=manager.id,
        alert_type=AlertTypes.BUDGET_LOSS,
        priority=AlertPriority.HIGH,
        title="Perda de Impressões por Orçamento",
        message="Você está perdendo 45% das impressões.",
        metric_name="search_budget_lost_is",
        current_value=45.0,
        threshold_value=40.0,
    )
    db.add(alert)
    await db.commit()
    return alert


@pytest.mark.anyio
async def test_list_alerts_visible_to_manager_and_client(
    http_client, alert, manager_headers, client_headers, other_manager_headers
):
    for headers, expected in ((manager_headers, 1), (client_headers, 1), (other_manager_headers, 0)):
        response = await http_client.get("/api/v1/alerts", headers=headers)
        assert response.status_code == 200
        assert response.json()["total"] == expected


@pytest.mark.anyio
async def test_acknowledge_marks_read(http_client, alert, manager_headers):
    response = await http_client.post(
        f"/api/v1/alerts/{alert.id}/acknowledge", headers=manager_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ACKNOWLEDGED"
    assert data["is_read"] is True


@pytest.mark.anyio
async def test_delete_only_closed_alerts(http_client, alert, manager_headers):
    response = await http_client.delete(f"/api/v1/alerts/{alert.id}", headers=manager_headers)
    assert response.status_code == 400

    await http_client.post(f"/api/v1/alerts/{alert.id}/dismiss", headers=manager_headers)
    response = await http_client.delete(f"/api/v1/alerts/{alert.id}", headers=manager_headers)
    assert response.status_code == 200

    response = await http_client.get(f"/api/v1/alerts/{alert.id}", headers=manager_headers)
    assert response.status_code == 404


@pytest.mark.anyio
async def test_mark_all_read(http_client, alert, manager_headers):
    response = await http_client.post("/api/v1/alerts/read", headers=manager_headers, json={})
    assert response.json() == {"updated_count": 1}

    response = await http_client.get("/api/v1/alerts/stats", headers=manager_headers)
    assert response.json()["unread"] == 0
    assert response.json()["total_active"] == 1
