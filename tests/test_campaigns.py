"""
Tests for campaign CRUD, access control and change tracking.
"""

import pytest
from sqlalchemy import select

from app.models import Campaign, ChangeHistory


@pytest.mark.anyio
async def test_create_campaign(http_client, session_factory, client_account, manager_headers):
    response = await http_client.post(
        "/api/v1/campaigns",
        headers=manager_headers,
        json={
            "client_id": client_account.id,
            "name": "PMax Nova",
            "budget_daily": 80,
            "target_roas": 3.5,
            "bidding_strategy": "MAXIMIZE_CONVERSION_VALUE",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["google_campaign_id"].startswith("MANUAL-")
    assert data["status"] == "ENABLED"
    assert data["budget_daily"] == 80
    assert data["client"]["id"] == client_account.id

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.entity_id == data["id"])
            )
        ).scalar_one()
        assert entry.action == "CREATE"
        assert entry.campaign_id == data["id"]


@pytest.mark.anyio
async def test_create_campaign_duplicate_google_id(http_client, campaign, manager_headers):
    response = await http_client.post(
        "/api/v1/campaigns",
        headers=manager_headers,
        json={
            "client_id": campaign.client_id,
            "name": "Repetida",
            "google_campaign_id": campaign.google_campaign_id,
        },
    )
    assert response.status_code == 400
    assert response.json()["message"] == "A campaign with this Google Ads id already exists"


@pytest.mark.anyio
async def test_create_campaign_for_foreign_client(http_client, other_campaign, manager_headers):
    response = await http_client.post(
        "/api/v1/campaigns",
        headers=manager_headers,
        json={"client_id": other_campaign.client_id, "name": "Invasora"},
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Client not found"


@pytest.mark.anyio
async def test_create_campaign_rejects_bad_dates(http_client, client_account, manager_headers):
    response = await http_client.post(
        "/api/v1/campaigns",
        headers=manager_headers,
        json={
            "client_id": client_account.id,
            "name": "Datas Invertidas",
            "start_date": "2026-05-10",
            "end_date": "2026-05-01",
        },
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_client_user_cannot_create_campaign(http_client, client_account, client_headers):
    response = await http_client.post(
        "/api/v1/campaigns",
        headers=client_headers,
        json={"client_id": client_account.id, "name": "Do Cliente"},
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_list_campaigns_scoped_per_role(
    http_client, campaign, other_campaign, manager_headers, client_headers, other_manager_headers
):
    for headers, expected in (
        (manager_headers, campaign.id),
        (client_headers, campaign.id),
        (other_manager_headers, other_campaign.id),
    ):
        response = await http_client.get("/api/v1/campaigns", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["campaigns"][0]["id"] == expected
        assert "metrics" in data["campaigns"][0]


@pytest.mark.anyio
async def test_get_campaign_access(
    http_client, campaign, client_headers, other_manager_headers
):
    response = await http_client.get(f"/api/v1/campaigns/{campaign.id}", headers=client_headers)
    assert response.status_code == 200
    assert response.json()["asset_groups"] == []

    response = await http_client.get(
        f"/api/v1/campaigns/{campaign.id}", headers=other_manager_headers
    )
    assert response.status_code == 403

    response = await http_client.get(
        "/api/v1/campaigns/00000000-0000-0000-0000-000000000000", headers=client_headers
    )
    assert response.status_code == 404


@pytest.mark.anyio
async def test_update_campaign_records_history(
    http_client, session_factory, campaign, manager_headers
):
    response = await http_client.put(
        f"/api/v1/campaigns/{campaign.id}",
        headers=manager_headers,
        json={"budget_daily": 150, "target_roas": 5, "name": "PMax Renomeada"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["budget_daily"] == 150
    assert data["name"] == "PMax Renomeada"

    async with session_factory() as session:
        entries = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.campaign_id == campaign.id)
            )
        ).scalars().all()

    by_entity = {entry.entity_type: entry for entry in entries}
    assert set(by_entity) == {"BUDGET", "TARGET", "CAMPAIGN"}

    budget = by_entity["BUDGET"]
    assert budget.change_type == "BUDGET_CHANGE"
    assert budget.extra_data["percent_change"] == 50.0
    assert budget.changes[0]["old_value"] == 100.0
    assert budget.changes[0]["new_value"] == 150.0

    assert [c["field"] for c in by_entity["CAMPAIGN"].changes] == ["name"]


@pytest.mark.anyio
async def test_status_only_update_is_a_status_change(
    http_client, session_factory, campaign, manager_headers
):
    response = await http_client.put(
        f"/api/v1/campaigns/{campaign.id}",
        headers=manager_headers,
        json={"status": "PAUSED"},
    )
    assert response.status_code == 200

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.campaign_id == campaign.id)
            )
        ).scalar_one()
    assert entry.action == "STATUS_CHANGE"


@pytest.mark.anyio
async def test_update_without_changes_writes_no_history(
    http_client, session_factory, campaign, manager_headers
):
    response = await http_client.put(
        f"/api/v1/campaigns/{campaign.id}",
        headers=manager_headers,
        json={"name": campaign.name},
    )
    assert response.status_code == 200

    async with session_factory() as session:
        entries = (await session.execute(select(ChangeHistory))).scalars().all()
    assert entries == []


@pytest.mark.anyio
async def test_update_rejects_null_for_required_fields(http_client, session_factory, campaign, manager_headers):
    for field in ("name", "status", "google_campaign_id"):
        response = await http_client.put(
            f"/api/v1/campaigns/{campaign.id}",
            headers=manager_headers,
            json={field: None},
        )
        assert response.status_code == 422

    async with session_factory() as session:
        stored = await session.get(Campaign, campaign.id)
    assert stored.name == "PMax Produtos"
    assert stored.status == "ENABLED"


@pytest.mark.anyio
async def test_delete_campaign_keeps_audit_entry(
    http_client, session_factory, campaign, manager_headers
):
    response = await http_client.delete(
        f"/api/v1/campaigns/{campaign.id}", headers=manager_headers
    )
    assert response.status_code == 200

    async with session_factory() as session:
        assert await session.get(Campaign, campaign.id) is None
        entry = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.entity_id == campaign.id)
            )
        ).scalar_one()
    assert entry.action == "DELETE"
    assert entry.campaign_id is None
