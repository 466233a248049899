"""
Tests for the change history: change detection, manual entries and scoped reads.
"""

from datetime import date

import pytest

from app.services.history_service import classify_change, detect_changes, generate_description


def test_detect_changes_compares_numbers_as_floats():
    changes = detect_changes(
        {"budget_daily": 150, "name": "A", "status": "ENABLED"},
        {"budget_daily": 150.0, "name": "B", "status": "ENABLED"},
    )
    assert changes == [
        {"field": "name", "label": "Nome", "old_value": "A", "new_value": "B"}
    ]


def test_detect_changes_serializes_dates_and_tracks_subset():
    changes = detect_changes(
        {"start_date": None, "name": "A"},
        {"start_date": date(2026, 3, 1), "name": "B"},
        tracked_fields=["start_date"],
    )
    assert len(changes) == 1
    assert changes[0]["new_value"] == "2026-03-01"


def test_classify_change():
    assert classify_change([{"field": "name"}, {"field": "target_cpa"}]) == "TARGET_CPA_CHANGE"
    assert classify_change([{"field": "name"}]) == "OTHER"


def test_generate_description_summarizes_many_changes():
    changes = [
        {"field": f"f{i}", "label": f"Campo {i}", "old_value": i, "new_value": i + 1}
        for i in range(4)
    ]
    description = generate_description("UPDATE", "CAMPAIGN", "PMax", changes)
    assert description.startswith('Atualizou campanha "PMax"')
    assert "4 campos alterados" in description


@pytest.mark.anyio
async def test_manual_entry_and_reads(http_client, campaign, manager, manager_headers, client_headers):
    response = await http_client.post(
        "/api/v1/history",
        headers=manager_headers,
        json={
            "action": "UPDATE",
            "entity_type": "BUDGET",
            "campaign_id": campaign.id,
            "entity_id": campaign.id,
            "entity_name": campaign.name,
            "changes": [{"field": "budget_daily", "old_value": 100, "new_value": 130}],
        },
    )
    assert response.status_code == 201
    entry = response.json()
    assert entry["extra_data"]["source"] == "manual"
    assert entry["changes"][0]["label"] == "Orçamento diário"
    assert entry["change_type"] == "BUDGET_CHANGE"
    assert entry["field"] == "budget_daily"
    assert entry["old_value"] == "100"
    assert entry["user_id"] == manager.id

    # The client sees entries of their campaigns
    response = await http_client.get(
        f"/api/v1/history/campaign/{campaign.id}", headers=client_headers
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await http_client.get(f"/api/v1/history/{entry['id']}", headers=client_headers)
    assert response.status_code == 200

    response = await http_client.get(
        f"/api/v1/history/entity/budget/{campaign.id}", headers=manager_headers
    )
    assert response.json()["total"] == 1

    response = await http_client.get(
        f"/api/v1/history/campaign/{campaign.id}/timeline", headers=manager_headers
    )
    timeline = response.json()["timeline"]
    assert len(timeline) == 1
    assert timeline[0]["count"] == 1


@pytest.mark.anyio
async def test_history_is_scoped(http_client, campaign, other_campaign, manager_headers, other_manager_headers):
    response = await http_client.post(
        "/api/v1/history",
        headers=manager_headers,
        json={"action": "UPDATE", "entity_type": "CAMPAIGN", "campaign_id": campaign.id},
    )
    entry_id = response.json()["id"]

    response = await http_client.get("/api/v1/history", headers=other_manager_headers)
    assert response.json()["total"] == 0

    response = await http_client.get(f"/api/v1/history/{entry_id}", headers=other_manager_headers)
    assert response.status_code == 404

    response = await http_client.get(
        f"/api/v1/history/campaign/{campaign.id}", headers=other_manager_headers
    )
    assert response.status_code == 403

    # Manual entries cannot target someone else's campaign
    response = await http_client.post(
        "/api/v1/history",
        headers=manager_headers,
        json={"action": "UPDATE", "entity_type": "CAMPAIGN", "campaign_id": other_campaign.id},
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_manual_entry_validates_action(http_client, manager, manager_headers):
    response = await http_client.post(
        "/api/v1/history",
        headers=manager_headers,
        json={"action": "EXPLODE", "entity_type": "CAMPAIGN"},
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_history_stats(http_client, campaign, manager_headers):
    for action in ("UPDATE", "UPDATE", "SYNC"):
        await http_client.post(
            "/api/v1/history",
            headers=manager_headers,
            json={"action": action, "entity_type": "CAMPAIGN", "campaign_id": campaign.id},
        )

    response = await http_client.get("/api/v1/history/stats", headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["by_action"] == {"UPDATE": 2, "SYNC": 1}
    assert data["top_campaigns"] == [
        {"campaign_id": campaign.id, "name": campaign.name, "changes": 3}
    ]


@pytest.mark.anyio
async def test_user_activity_requires_managed_user(
    http_client, client_user, other_manager, manager_headers, other_manager_headers
):
    response = await http_client.get(
        f"/api/v1/history/user/{client_user.id}/activity", headers=manager_headers
    )
    assert response.status_code == 200

    response = await http_client.get(
        f"/api/v1/history/user/{client_user.id}/activity", headers=other_manager_headers
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_filter_lists(http_client, manager, manager_headers):
    response = await http_client.get("/api/v1/history/action-types", headers=manager_headers)
    values = [item["value"] for item in response.json()["action_types"]]
    assert "STATUS_CHANGE" in values

    response = await http_client.get("/api/v1/history/entity-types", headers=manager_headers)
    values = [item["value"] for item in response.json()["entity_types"]]
    assert "RECOMMENDATION" in values
