"""
Tests for recommendation decisions, the AI configuration gate and AI
generation with a mocked provider.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from app.models import AssetGroup, ChangeHistory, Recommendation
from app.services.ai_prompts import (
    AdSuggestions,
    AdVariation,
    AssetAnalysisSuggestions,
    AssetGroupSuggestion,
    CampaignAdSuggestions,
    CampaignDiagnosis,
    PrioritizedAction,
)
from app.services.ai_service import AIServiceError, GenerationResult
from app.services.recommendation_service import (
    get_upcoming_seasonal_events,
    score_asset_group,
    trim_descriptions,
    trim_headlines,
)


def generation_result() -> GenerationResult:
    return GenerationResult(
        content=None,
        model="gpt-4o-mini",
        provider="openai",
        prompt_tokens=800,
        completion_tokens=400,
        total_tokens=1200,
        estimated_cost=0.0004,
        generation_time_ms=1500,
    )


def mocked_ai(response=None, side_effect=None) -> MagicMock:
    ai = MagicMock()
    ai.is_configured = True
    ai.generate_structured = AsyncMock(
        return_value=(response, generation_result()), side_effect=side_effect
    )
    return ai


@pytest.fixture
async def recommendation(db, campaign):
    recommendation = Recommendation(
        campaign_id=campaign.id,
        type="BUDGET",
        category="budget",
        title="Aumentar orçamento",
        description="A campanha perde impressões por orçamento.",
        priority=2,
        impact_score=7,
        data={"suggested_budget": 120},
    )
    db.add(recommendation)
    await db.commit()
    return recommendation


@pytest.mark.anyio
async def test_list_recommendations_for_client(http_client, recommendation, campaign, client_headers):
    response = await http_client.get(
        f"/api/v1/ai/campaigns/{campaign.id}/recommendations", headers=client_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["recommendations"][0]["status"] == "PENDING"


@pytest.mark.anyio
async def test_apply_recommendation_once(
    http_client, session_factory, recommendation, manager, manager_headers
):
    url = f"/api/v1/ai/recommendations/{recommendation.id}/apply"
    response = await http_client.post(url, headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "APPLIED"
    assert data["applied_by_id"] == manager.id
    assert data["applied_at"] is not None

    response = await http_client.post(url, headers=manager_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Recommendation is already applied"

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.entity_id == recommendation.id)
            )
        ).scalar_one()
    assert entry.action == "APPROVE"
    assert entry.entity_type == "RECOMMENDATION"


@pytest.mark.anyio
async def test_reject_recommendation_with_reason(
    http_client, session_factory, recommendation, manager_headers
):
    response = await http_client.post(
        f"/api/v1/ai/recommendations/{recommendation.id}/reject",
        headers=manager_headers,
        json={"reason": "Cliente sem verba"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert response.json()["rejected_reason"] == "Cliente sem verba"

    response = await http_client.post(
        f"/api/v1/ai/recommendations/{recommendation.id}/apply", headers=manager_headers
    )
    assert response.status_code == 400

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(ChangeHistory).where(ChangeHistory.entity_id == recommendation.id)
            )
        ).scalar_one()
    assert entry.action == "REJECT"
    assert entry.extra_data == {"reason": "Cliente sem verba"}


@pytest.mark.anyio
async def test_other_manager_cannot_decide(http_client, recommendation, other_manager_headers):
    response = await http_client.post(
        f"/api/v1/ai/recommendations/{recommendation.id}/apply",
        headers=other_manager_headers,
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_unknown_recommendation(http_client, manager, manager_headers):
    response = await http_client.post(
        "/api/v1/ai/recommendations/00000000-0000-0000-0000-000000000000/apply",
        headers=manager_headers,
    )
    assert response.status_code == 404


@pytest.mark.anyio
async def test_diagnosis_without_ai_provider(http_client, campaign, manager_headers):
    response = await http_client.post(
        f"/api/v1/ai/campaigns/{campaign.id}/diagnosis", headers=manager_headers
    )
    assert response.status_code == 503
    assert response.json()["message"] == "AI features are not configured"


def test_trim_respects_google_ads_limits():
    headlines = trim_headlines(["Frete grátis para todo o Brasil hoje", "", "Curto"])
    assert all(len(h) <= 30 for h in headlines)
    assert "Curto" in headlines
    assert "" not in headlines

    descriptions = trim_descriptions(["x" * 120])
    assert len(descriptions[0]) <= 90


def test_upcoming_seasonal_events():
    events = get_upcoming_seasonal_events(today=date(2026, 11, 1))
    names = [event["name"] for event in events]
    assert "Black Friday" in names


# =============================================================================
# AI generation
# =============================================================================

@pytest.mark.anyio
async def test_diagnosis_saves_top_actions(http_client, session_factory, campaign, manager_headers):
    diagnosis = CampaignDiagnosis(
        overall_score=58,
        overall_status="needs_attention",
        summary="ROAS abaixo da meta e perda de impressões por orçamento.",
        prioritized_actions=[
            PrioritizedAction(priority=priority, action=f"Ação {priority}", effort="low")
            for priority in (7, 3, 1, 6, 2, 5, 4)
        ],
    )
    ai = mocked_ai(diagnosis)

    with patch("app.services.recommendation_service.ai_service", ai):
        response = await http_client.post(
            f"/api/v1/ai/campaigns/{campaign.id}/diagnosis", headers=manager_headers
        )
    assert response.status_code == 200
    data = response.json()
    assert data["diagnosis"]["overall_score"] == 58
    assert data["usage"]["total_tokens"] == 1200
    assert "content" not in data["usage"]
    assert [r["priority"] for r in data["recommendations"]] == [1, 2, 3, 4, 5]
    ai.generate_structured.assert_awaited_once()

    async with session_factory() as session:
        saved = (
            await session.execute(
                select(Recommendation).where(Recommendation.campaign_id == campaign.id)
            )
        ).scalars().all()
    assert sorted(r.priority for r in saved) == [1, 2, 3, 4, 5]
    assert {r.status for r in saved} == {"PENDING"}
    assert {r.type for r in saved} == {"OPTIMIZATION"}


@pytest.mark.anyio
async def test_generated_ads_are_trimmed(http_client, manager_headers):
    suggestions = AdSuggestions(
        headlines=["Frete grátis para todo o Brasil hoje mesmo", "   ", "Curto"],
        descriptions=["x" * 120, "Descrição curta"],
        ad_variations=[AdVariation(name="Oferta", headline1="y" * 40, description1="z" * 100)],
    )

    with patch("app.services.recommendation_service.ai_service", mocked_ai(suggestions)):
        response = await http_client.post(
            "/api/v1/ai/generate-ads",
            headers=manager_headers,
            json={"product": {"name": "Tênis de corrida"}, "keywords": ["tênis"]},
        )
    assert response.status_code == 200
    data = response.json()
    assert data["headlines"] == ["Frete grátis para todo o Brasi", "Curto"]
    assert [len(d) for d in data["descriptions"]] == [90, len("Descrição curta")]
    variation = data["ad_variations"][0]
    assert len(variation["headline1"]) == 30
    assert len(variation["description1"]) == 90
    assert "seasonal_events" in data


def test_asset_group_score():
    assert score_asset_group(15, 4, "EXCELLENT") == 100
    assert score_asset_group(3, 2, "POOR") == 28
    assert score_asset_group(0, 0, None) == 10


@pytest.fixture
async def asset_group(db, campaign):
    group = AssetGroup(
        campaign_id=campaign.id,
        name="Calçados",
        status="ENABLED",
        headlines=["Tênis em oferta", "Frete grátis", "Compre já"],
        descriptions=["Os melhores tênis.", "Entrega rápida."],
        ad_strength="POOR",
    )
    db.add(group)
    await db.commit()
    return group


@pytest.mark.anyio
async def test_analyze_assets_without_ai(http_client, asset_group, campaign, client_headers):
    response = await http_client.post(
        f"/api/v1/ai/campaigns/{campaign.id}/analyze-assets", headers=client_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["campaign"] == {"id": campaign.id, "name": campaign.name}
    assert data["overall_score"] == 28
    assert data["ai_suggestions"] == []
    group = data["asset_groups"][0]
    assert group["asset_group_id"] == asset_group.id
    assert group["headlines_count"] == 3
    assert len(group["issues"]) == 2


@pytest.mark.anyio
async def test_analyze_assets_with_ai(http_client, asset_group, campaign, manager_headers):
    suggestions = AssetAnalysisSuggestions(
        suggestions=[
            AssetGroupSuggestion(
                asset_group_name="Calçados",
                new_headlines=["Tênis com até 50% de desconto só hoje", ""],
                new_descriptions=["Descrição nova"],
                improvements=["Adicionar vídeo"],
            )
        ]
    )

    with patch("app.services.recommendation_service.ai_service", mocked_ai(suggestions)):
        response = await http_client.post(
            f"/api/v1/ai/campaigns/{campaign.id}/analyze-assets", headers=manager_headers
        )
    suggestion = response.json()["ai_suggestions"][0]
    assert suggestion["new_headlines"] == ["Tênis com até 50% de desconto"]
    assert suggestion["improvements"] == ["Adicionar vídeo"]

    failing = mocked_ai(side_effect=AIServiceError("provider down"))
    with patch("app.services.recommendation_service.ai_service", failing):
        response = await http_client.post(
            f"/api/v1/ai/campaigns/{campaign.id}/analyze-assets", headers=manager_headers
        )
    assert response.status_code == 200
    assert response.json()["ai_suggestions"] == []
    assert response.json()["overall_score"] == 28


@pytest.mark.anyio
async def test_suggest_ads_falls_back_to_templates(
    http_client, campaign, manager_headers, other_manager_headers
):
    url = f"/api/v1/ai/campaigns/{campaign.id}/suggest-ads"
    response = await http_client.post(url, headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["generated_by"] == "template"
    assert len(data["headlines"]) == 5
    assert all(len(h) <= 30 for h in data["headlines"])

    response = await http_client.post(url, headers=other_manager_headers)
    assert response.status_code == 403


@pytest.mark.anyio
async def test_suggest_ads_with_ai(http_client, campaign, client_headers):
    suggestions = CampaignAdSuggestions(
        headlines=["Moda praia com frete grátis em todo o país"],
        descriptions=["Coleção nova"],
        call_to_actions=["Comprar"],
    )
    ai = mocked_ai(suggestions)

    with patch("app.services.recommendation_service.ai_service", ai):
        response = await http_client.post(
            f"/api/v1/ai/campaigns/{campaign.id}/suggest-ads",
            headers=client_headers,
            json={"tone": "descontraído", "keywords": ["biquíni"]},
        )
    assert response.status_code == 200
    data = response.json()
    assert data["generated_by"] == "ai"
    assert data["headlines"] == ["Moda praia com frete grátis em"]
    prompt = ai.generate_structured.await_args.kwargs["messages"][1]["content"]
    assert "descontraído" in prompt
    assert "biquíni" in prompt
