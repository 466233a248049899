"""
Recommendation Service

AI assistance for Performance Max campaigns:
- Campaign diagnosis persisted as PENDING recommendations
- Ad suggestions, headlines and descriptions within Google Ads limits
- Rewrites of low-performing assets
- Asset group review and new ad suggestions for a campaign
- Image analysis with the vision model
- A/B test variations of a base ad
- Recommendation lifecycle (apply / reject) with change history
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, NotFoundError, ServiceUnavailableError
from app.models import (
    AssetGroup,
    Campaign,
    CampaignMetric,
    HistoryActions,
    ListingGroup,
    Recommendation,
    SearchTerm,
    User,
)
from app.services import history_service
from app.services.ai_prompts import (
    AD_GENERATION_PROMPT,
    AD_GENERATION_USER_PROMPT,
    AD_VARIATIONS_USER_PROMPT,
    ASSET_ANALYSIS_USER_PROMPT,
    ASSET_REWRITE_PROMPT,
    ASSET_REWRITE_USER_PROMPT,
    CAMPAIGN_ADS_USER_PROMPT,
    CAMPAIGN_DIAGNOSIS_PROMPT,
    CAMPAIGN_DIAGNOSIS_USER_PROMPT,
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTIONS_USER_PROMPT,
    HEADLINE_MAX_LENGTH,
    HEADLINES_USER_PROMPT,
    IMAGE_ANALYSIS_PROMPT,
    IMAGE_ANALYSIS_USER_PROMPT,
    AdSuggestions,
    AdVariationsResponse,
    AssetAnalysisSuggestions,
    AssetRewriteResponse,
    CampaignAdSuggestions,
    CampaignDiagnosis,
    DescriptionSuggestions,
    HeadlineSuggestions,
    ImageAnalysis,
)
from app.services.ai_service import AIServiceError, ai_service
from app.services.campaign_service import get_campaign_for_user
from app.services.metrics_service import summarize_metrics

logger = structlog.get_logger()

DIAGNOSIS_DAYS = 30
MAX_SAVED_ACTIONS = 5
SEASONAL_WINDOW_DAYS = 60
LOW_PERFORMANCE_LABELS = ("LOW", "POOR", "LEARNING")

# (name, month, day); movable dates are approximated
SEASONAL_EVENTS = (
    ("Ano Novo", 1, 1),
    ("Carnaval", 2, 13),
    ("Dia do Consumidor", 3, 15),
    ("Páscoa", 4, 20),
    ("Dia das Mães", 5, 11),
    ("Dia dos Namorados", 6, 12),
    ("Dia dos Pais", 8, 11),
    ("Dia do Cliente", 9, 15),
    ("Dia das Crianças", 10, 12),
    ("Black Friday", 11, 29),
    ("Natal", 12, 25),
)

EFFORT_IMPACT = {"low": 8, "medium": 6, "high": 4}


def ensure_ai_configured() -> None:
    if not ai_service.is_configured:
        raise ServiceUnavailableError("AI features are not configured")


# =============================================================================
# Helpers
# =============================================================================

def get_upcoming_seasonal_events(
    today: Optional[date] = None, window_days: int = SEASONAL_WINDOW_DAYS
) -> list[dict[str, Any]]:
    """Brazilian retail dates happening in the next `window_days` days."""
    today = today or date.today()
    upcoming = []
    for name, month, day in SEASONAL_EVENTS:
        event_date = date(today.year, month, day)
        if event_date < today:
            event_date = date(today.year + 1, month, day)
        days_until = (event_date - today).days
        if days_until <= window_days:
            upcoming.append({
                "name": name,
                "date": event_date.strftime("%d/%m/%Y"),
                "days_until": days_until,
            })
    return sorted(upcoming, key=lambda e: e["days_until"])


def trim_texts(texts: list[str], max_length: int) -> list[str]:
    """Cut texts to the Google Ads limit, dropping empty ones."""
    trimmed = [text.strip()[:max_length].rstrip() for text in texts if isinstance(text, str)]
    return [text for text in trimmed if text]


def trim_headlines(headlines: list[str]) -> list[str]:
    return trim_texts(headlines, HEADLINE_MAX_LENGTH)


def trim_descriptions(descriptions: list[str]) -> list[str]:
    return trim_texts(descriptions, DESCRIPTION_MAX_LENGTH)


def _join(values: Any, default: str = "Não informado") -> str:
    if not values:
        return default
    if isinstance(values, (list, tuple)):
        return ", ".join(str(v) for v in values)
    return str(values)


def _money(value: Optional[float]) -> str:
    return f"R$ {value:.2f}" if value else "Não definido"


def _percent(value: Optional[float]) -> str:
    """Impression share fractions as a percentage string."""
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}" if value <= 1 else f"{value:.1f}"


async def build_campaign_context(db: AsyncSession, campaign: Campaign) -> dict[str, Any]:
    """
    Collect what the diagnosis needs about a campaign.

    Metrics cover the last 30 days; asset groups and listing groups are the
    top 10 by cost and conversions, search terms the top 20 by conversions.
    """
    start_date = date.today() - timedelta(days=DIAGNOSIS_DAYS)

    metrics = list((await db.execute(
        select(CampaignMetric)
        .where(CampaignMetric.campaign_id == campaign.id, CampaignMetric.date >= start_date)
        .order_by(CampaignMetric.date)
    )).scalars().all())

    asset_groups = list((await db.execute(
        select(AssetGroup)
        .where(AssetGroup.campaign_id == campaign.id)
        .order_by(AssetGroup.cost.desc())
        .limit(10)
    )).scalars().all())

    listing_groups = list((await db.execute(
        select(ListingGroup)
        .where(ListingGroup.campaign_id == campaign.id)
        .order_by(ListingGroup.conversions.desc())
        .limit(10)
    )).scalars().all())

    search_terms = (await db.execute(
        select(
            SearchTerm.search_term,
            func.sum(SearchTerm.clicks).label("clicks"),
            func.sum(SearchTerm.cost).label("cost"),
            func.sum(SearchTerm.conversions).label("conversions"),
        )
        .where(SearchTerm.campaign_id == campaign.id, SearchTerm.date >= start_date)
        .group_by(SearchTerm.search_term)
        .order_by(func.sum(SearchTerm.conversions).desc())
        .limit(20)
    )).all()

    summary = summarize_metrics(metrics)
    summary["cvr"] = (
        round(summary["conversions"] / summary["clicks"] * 100, 2) if summary["clicks"] else 0.0
    )

    with_share = [m for m in metrics if m.search_impression_share is not None]
    latest_share = with_share[-1] if with_share else None

    return {
        "campaign": {
            "id": campaign.id,
            "name": campaign.name,
            "budget_daily": campaign.budget_daily,
            "target_roas": campaign.target_roas,
            "target_cpa": campaign.target_cpa,
        },
        "metrics": summary,
        "impression_share": {
            "search_impression_share": latest_share.search_impression_share if latest_share else None,
            "search_budget_lost_is": latest_share.search_budget_lost_is if latest_share else None,
            "search_rank_lost_is": latest_share.search_rank_lost_is if latest_share else None,
        },
        "asset_groups": [
            {
                "name": g.name,
                "status": g.status,
                "ad_strength": g.ad_strength,
                "cost": g.cost,
                "conversions": g.conversions,
                "roas": round(g.conversion_value / g.cost, 2) if g.cost else 0,
            }
            for g in asset_groups
        ],
        "listing_groups": [
            {
                "dimension": g.dimension,
                "value": g.value,
                "cost": g.cost,
                "conversions": g.conversions,
                "roas": round(g.conversion_value / g.cost, 2) if g.cost else 0,
            }
            for g in listing_groups
        ],
        "search_terms": [
            {
                "search_term": row.search_term,
                "clicks": int(row.clicks or 0),
                "cost": round(float(row.cost or 0), 2),
                "conversions": round(float(row.conversions or 0), 2),
            }
            for row in search_terms
        ],
    }


def _format_lines(items: list[dict], fields: tuple[str, ...]) -> str:
    if not items:
        return "Nenhum dado disponível"
    return "\n".join(
        "- " + " | ".join(f"{field}: {item.get(field)}" for field in fields)
        for item in items
    )


# =============================================================================
# Diagnosis
# =============================================================================

async def diagnose_campaign(
    db: AsyncSession, user: User, campaign_id: str
) -> dict[str, Any]:
    """
    Diagnose a campaign and store its top prioritized actions.

    Returns:
        Dict with the diagnosis, the saved recommendations and usage data
    """
    ensure_ai_configured()
    campaign = await get_campaign_for_user(db, user, campaign_id)
    context = await build_campaign_context(db, campaign)
    metrics = context["metrics"]
    share = context["impression_share"]

    user_prompt = CAMPAIGN_DIAGNOSIS_USER_PROMPT.format(
        campaign_name=campaign.name,
        budget=_money(campaign.budget_daily),
        target_roas=f"{campaign.target_roas}x" if campaign.target_roas else "Não definido",
        target_cpa=_money(campaign.target_cpa),
        days=DIAGNOSIS_DAYS,
        metrics=_format_lines(
            [metrics],
            ("impressions", "clicks", "cost", "conversions", "conversion_value", "ctr", "cpc", "cpa", "roas", "cvr"),
        ),
        asset_group_count=len(context["asset_groups"]),
        asset_groups=_format_lines(
            context["asset_groups"], ("name", "status", "ad_strength", "cost", "conversions", "roas")
        ),
        listing_group_count=len(context["listing_groups"]),
        listing_groups=_format_lines(
            context["listing_groups"], ("dimension", "value", "cost", "conversions", "roas")
        ),
        search_terms=_format_lines(
            context["search_terms"], ("search_term", "clicks", "cost", "conversions")
        ),
        impression_share=_percent(share["search_impression_share"]),
        budget_lost_is=_percent(share["search_budget_lost_is"]),
        rank_lost_is=_percent(share["search_rank_lost_is"]),
    )

    diagnosis, result = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": CAMPAIGN_DIAGNOSIS_PROMPT},
            {"role": "user", "content": user_prompt},
        ],
        response_model=CampaignDiagnosis,
        temperature=0.3,
    )

    actions = sorted(diagnosis.prioritized_actions, key=lambda a: a.priority)[:MAX_SAVED_ACTIONS]
    recommendations = [
        Recommendation(
            campaign_id=campaign.id,
            type="OPTIMIZATION",
            category=action.category,
            title=action.action[:500],
            description=action.expected_impact or None,
            priority=action.priority,
            impact_score=EFFORT_IMPACT.get((action.effort or "").lower(), 5),
            data={
                "effort": action.effort,
                "timeframe": action.timeframe,
                "overall_score": diagnosis.overall_score,
            },
        )
        for action in actions
    ]
    db.add_all(recommendations)
    await db.commit()

    logger.info(
        "campaign_diagnosed",
        campaign_id=campaign.id,
        score=diagnosis.overall_score,
        recommendations=len(recommendations),
        tokens=result.total_tokens,
    )

    return {
        "campaign_id": campaign.id,
        "diagnosis": diagnosis.model_dump(),
        "recommendations": [serialize_recommendation(r) for r in recommendations],
        "usage": result.model_dump(exclude={"content"}),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


# =============================================================================
# Creative generation
# =============================================================================

async def generate_ad_suggestions(
    product: dict[str, Any],
    audience: Optional[dict[str, Any]] = None,
    keywords: Optional[list[str]] = None,
    headline_count: int = 15,
    description_count: int = 4,
) -> dict[str, Any]:
    """Full creative package for an asset group, trimmed to Google Ads limits."""
    ensure_ai_configured()
    audience = audience or {}
    seasonal_events = get_upcoming_seasonal_events()

    user_prompt = AD_GENERATION_USER_PROMPT.format(
        name=product.get("name") or "Não informado",
        description=product.get("description") or "Não informado",
        price=product.get("price") or "Não informado",
        category=product.get("category") or "Não informado",
        benefits=_join(product.get("benefits")),
        differentials=_join(product.get("differentials")),
        demographics=audience.get("demographics") or "Não informado",
        interests=_join(audience.get("interests")),
        pain_points=_join(audience.get("pain_points")),
        keywords=_join(keywords, default="Nenhuma"),
        seasonal_events="\n".join(
            f"- {e['name']}: {e['date']} (em {e['days_until']} dias)" for e in seasonal_events
        ) or "Nenhuma nos próximos 60 dias",
        headline_count=headline_count,
        description_count=description_count,
    )

    suggestions, result = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": AD_GENERATION_PROMPT},
            {"role": "user", "content": user_prompt},
        ],
        response_model=AdSuggestions,
        temperature=0.8,
    )

    suggestions.headlines = trim_headlines(suggestions.headlines)
    suggestions.descriptions = trim_descriptions(suggestions.descriptions)
    for variation in suggestions.ad_variations:
        variation.headline1 = variation.headline1[:HEADLINE_MAX_LENGTH]
        variation.headline2 = variation.headline2[:HEADLINE_MAX_LENGTH]
        variation.headline3 = variation.headline3[:HEADLINE_MAX_LENGTH]
        variation.description1 = variation.description1[:DESCRIPTION_MAX_LENGTH]
        variation.description2 = variation.description2[:DESCRIPTION_MAX_LENGTH]

    logger.info("ad_suggestions_generated", product=product.get("name"), tokens=result.total_tokens)

    return {
        **suggestions.model_dump(),
        "seasonal_events": seasonal_events,
        "usage": result.model_dump(exclude={"content"}),
    }


async def generate_headlines(
    product: dict[str, Any], keywords: Optional[list[str]] = None, count: int = 15
) -> list[str]:
    ensure_ai_configured()
    response, _ = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": AD_GENERATION_PROMPT},
            {"role": "user", "content": HEADLINES_USER_PROMPT.format(
                count=count,
                name=product.get("name") or "Não informado",
                description=product.get("description") or "Não informado",
                benefits=_join(product.get("benefits")),
                keywords=_join(keywords, default="Nenhuma"),
            )},
        ],
        response_model=HeadlineSuggestions,
        temperature=0.8,
    )
    return trim_headlines(response.headlines)[:count]


async def generate_descriptions(product: dict[str, Any], count: int = 4) -> list[str]:
    ensure_ai_configured()
    response, _ = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": AD_GENERATION_PROMPT},
            {"role": "user", "content": DESCRIPTIONS_USER_PROMPT.format(
                count=count,
                name=product.get("name") or "Não informado",
                description=product.get("description") or "Não informado",
                benefits=_join(product.get("benefits")),
                differentials=_join(product.get("differentials")),
            )},
        ],
        response_model=DescriptionSuggestions,
        temperature=0.8,
    )
    return trim_descriptions(response.descriptions)[:count]


async def rewrite_assets(
    assets: list[dict[str, Any]], context: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    """
    Rewrite assets labelled LOW, POOR or LEARNING.

    Returns a message and no rewrites when every asset performs well.
    """
    ensure_ai_configured()
    context = context or {}
    low_performing = [
        asset for asset in assets
        if str(asset.get("performance_label") or "").upper() in LOW_PERFORMANCE_LABELS
    ]
    if not low_performing:
        return {
            "message": "Nenhum ativo com baixa performance encontrado",
            "rewrites": [],
            "general_tips": [],
        }

    asset_lines = "\n".join(
        f'{i}. [{(a.get("type") or "headline").upper()}] "{a.get("content", "")}" '
        f'(Performance: {a.get("performance_label")})'
        for i, a in enumerate(low_performing, start=1)
    )
    response, result = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": ASSET_REWRITE_PROMPT},
            {"role": "user", "content": ASSET_REWRITE_USER_PROMPT.format(
                assets=asset_lines,
                product_name=context.get("product_name") or "Não informado",
                audience=context.get("audience") or "Não informado",
                tone=context.get("tone") or "profissional e persuasivo",
            )},
        ],
        response_model=AssetRewriteResponse,
        temperature=0.8,
    )

    for rewrite in response.rewrites:
        limit = DESCRIPTION_MAX_LENGTH if rewrite.original_type == "description" else HEADLINE_MAX_LENGTH
        for suggestion in rewrite.suggestions:
            suggestion.content = suggestion.content[:limit]

    logger.info("assets_rewritten", assets=len(low_performing), tokens=result.total_tokens)
    return response.model_dump()


async def analyze_image(image_url: str, context: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Score an ad image 1-10 with the vision model."""
    ensure_ai_configured()
    context = context or {}
    analysis, result = await ai_service.analyze_image(
        prompt=IMAGE_ANALYSIS_USER_PROMPT.format(
            product_name=context.get("product_name") or "Não informado",
            objective=context.get("objective") or "Conversões",
            audience=context.get("audience") or "Não informado",
        ),
        image_url=image_url,
        response_model=ImageAnalysis,
        system_prompt=IMAGE_ANALYSIS_PROMPT,
    )
    logger.info("image_analyzed", score=analysis.overall_score, tokens=result.total_tokens)
    return {**analysis.model_dump(), "image_url": image_url}


async def generate_variations(
    base_ad: dict[str, Any], context: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    """Five A/B test variations of a base ad."""
    ensure_ai_configured()
    context = context or {}
    response, result = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": AD_GENERATION_PROMPT},
            {"role": "user", "content": AD_VARIATIONS_USER_PROMPT.format(
                headline1=base_ad.get("headline1") or "",
                headline2=base_ad.get("headline2") or "",
                headline3=base_ad.get("headline3") or "",
                description1=base_ad.get("description1") or "",
                description2=base_ad.get("description2") or "",
                product_name=context.get("product_name") or "Não informado",
                audience=context.get("audience") or "Não informado",
                objective=context.get("objective") or "Conversões",
            )},
        ],
        response_model=AdVariationsResponse,
        temperature=0.8,
    )

    for variation in response.variations:
        variation.headline1 = variation.headline1[:HEADLINE_MAX_LENGTH]
        variation.headline2 = variation.headline2[:HEADLINE_MAX_LENGTH]
        variation.headline3 = variation.headline3[:HEADLINE_MAX_LENGTH]
        variation.description1 = variation.description1[:DESCRIPTION_MAX_LENGTH]
        variation.description2 = variation.description2[:DESCRIPTION_MAX_LENGTH]

    logger.info("ad_variations_generated", variations=len(response.variations), tokens=result.total_tokens)
    return response.model_dump()


# =============================================================================
# Campaign assets
# =============================================================================

AD_STRENGTH_SCORES = {"EXCELLENT": 30, "GOOD": 25, "AVERAGE": 15, "POOR": 5}

TEMPLATE_AD_SUGGESTIONS = {
    "headlines": [
        "Compre Agora com Desconto",
        "Frete Grátis para Todo Brasil",
        "Qualidade Garantida",
        "Os Melhores Preços",
        "Promoção por Tempo Limitado",
    ],
    "descriptions": [
        "Encontre os melhores produtos com os melhores preços. Aproveite!",
        "Compre online com segurança e receba em casa rapidamente.",
    ],
    "call_to_actions": ["Comprar Agora", "Ver Ofertas", "Aproveitar Desconto"],
}


def score_asset_group(headlines: int, descriptions: int, ad_strength: Optional[str]) -> int:
    """
    Quality score 0-100 of an asset group.

    Headlines count up to 40 points (15 max), descriptions up to 30 (4 max)
    and the ad strength up to 30.
    """
    score = min(headlines, 15) * 40 / 15
    score += min(descriptions, 4) * 30 / 4
    score += AD_STRENGTH_SCORES.get((ad_strength or "").upper(), 10)
    return round(score)


def assess_asset_group(group: AssetGroup) -> dict[str, Any]:
    headlines = len(group.headlines or [])
    descriptions = len(group.descriptions or [])
    issues = []
    suggestions = []

    if headlines < 5:
        issues.append(f"Apenas {headlines} títulos. Recomendado: 5-15.")
        suggestions.append("Adicione mais títulos para aumentar a variação de anúncios.")
    if descriptions < 2:
        issues.append(f"Apenas {descriptions} descrição(ões). Recomendado: 2-4.")
        suggestions.append("Adicione mais descrições para testar diferentes mensagens.")
    if (group.ad_strength or "").upper() == "POOR":
        issues.append("Força do anúncio baixa segundo o Google.")
        suggestions.append("Revise os ativos com baixo desempenho e substitua-os.")

    return {
        "asset_group_id": group.id,
        "name": group.name,
        "status": group.status,
        "ad_strength": group.ad_strength,
        "headlines_count": headlines,
        "descriptions_count": descriptions,
        "issues": issues,
        "suggestions": suggestions,
        "score": score_asset_group(headlines, descriptions, group.ad_strength),
    }


async def analyze_campaign_assets(
    db: AsyncSession, user: User, campaign_id: str
) -> dict[str, Any]:
    """
    Rule-based review of every asset group of a campaign.

    When AI is configured, new headlines, descriptions and improvements per
    asset group are added under `ai_suggestions`. AI failures leave the
    rule-based review in place.
    """
    campaign = await get_campaign_for_user(db, user, campaign_id, with_details=True)
    groups = [assess_asset_group(group) for group in campaign.asset_groups]
    overall = round(sum(g["score"] for g in groups) / len(groups), 1) if groups else 0

    analysis: dict[str, Any] = {
        "campaign": {"id": campaign.id, "name": campaign.name},
        "asset_groups": groups,
        "overall_score": overall,
        "ai_suggestions": [],
    }
    if not groups or not ai_service.is_configured:
        return analysis

    group_lines = "\n".join(
        f"{g['name']}:\n"
        f"- Títulos: {g['headlines_count']}/15\n"
        f"- Descrições: {g['descriptions_count']}/4\n"
        f"- Força do anúncio: {g['ad_strength'] or 'Não avaliada'}\n"
        f"- Problemas: {', '.join(g['issues']) or 'Nenhum'}"
        for g in groups
    )
    try:
        response, result = await ai_service.generate_structured(
            messages=[
                {"role": "system", "content": AD_GENERATION_PROMPT},
                {"role": "user", "content": ASSET_ANALYSIS_USER_PROMPT.format(
                    campaign_name=campaign.name,
                    asset_groups=group_lines,
                    company=campaign.client.company or "Não especificada",
                )},
            ],
            response_model=AssetAnalysisSuggestions,
            temperature=0.8,
        )
    except AIServiceError as e:
        logger.warning("asset_analysis_ai_failed", campaign_id=campaign.id, error=str(e))
        return analysis

    for suggestion in response.suggestions:
        suggestion.new_headlines = trim_headlines(suggestion.new_headlines)
        suggestion.new_descriptions = trim_descriptions(suggestion.new_descriptions)
    analysis["ai_suggestions"] = [s.model_dump() for s in response.suggestions]

    logger.info("campaign_assets_analyzed", campaign_id=campaign.id, tokens=result.total_tokens)
    return analysis


async def suggest_campaign_ads(
    db: AsyncSession,
    user: User,
    campaign_id: str,
    tone: str = "profissional",
    objective: str = "vendas",
    keywords: Optional[list[str]] = None,
) -> dict[str, Any]:
    """New ads for a campaign; template suggestions when AI is not configured."""
    campaign = await get_campaign_for_user(db, user, campaign_id)
    if not ai_service.is_configured:
        return {**TEMPLATE_AD_SUGGESTIONS, "generated_by": "template"}

    response, result = await ai_service.generate_structured(
        messages=[
            {"role": "system", "content": AD_GENERATION_PROMPT},
            {"role": "user", "content": CAMPAIGN_ADS_USER_PROMPT.format(
                company=campaign.client.company or "Loja Online",
                campaign_name=campaign.name,
                tone=tone,
                objective=objective,
                keywords=_join(keywords, default="produtos, comprar, loja"),
            )},
        ],
        response_model=CampaignAdSuggestions,
        temperature=0.8,
    )

    logger.info("campaign_ads_suggested", campaign_id=campaign.id, tokens=result.total_tokens)
    return {
        "headlines": trim_headlines(response.headlines),
        "descriptions": trim_descriptions(response.descriptions),
        "call_to_actions": response.call_to_actions,
        "generated_by": "ai",
        "usage": result.model_dump(exclude={"content"}),
    }


# =============================================================================
# Recommendation lifecycle
# =============================================================================

def serialize_recommendation(recommendation: Recommendation) -> dict[str, Any]:
    return {
        "id": recommendation.id,
        "campaign_id": recommendation.campaign_id,
        "type": recommendation.type,
        "category": recommendation.category,
        "title": recommendation.title,
        "description": recommendation.description,
        "priority": recommendation.priority,
        "impact_score": recommendation.impact_score,
        "data": recommendation.data or {},
        "status": recommendation.status,
        "applied_at": recommendation.applied_at.isoformat() if recommendation.applied_at else None,
        "applied_by_id": recommendation.applied_by_id,
        "rejected_at": recommendation.rejected_at.isoformat() if recommendation.rejected_at else None,
        "rejected_reason": recommendation.rejected_reason,
        "created_at": recommendation.created_at.isoformat() if recommendation.created_at else None,
    }


async def list_recommendations(
    db: AsyncSession, user: User, campaign_id: str, status: Optional[str] = None
) -> list[Recommendation]:
    """Recommendations of a campaign, most important and newest first."""
    await get_campaign_for_user(db, user, campaign_id)
    query = select(Recommendation).where(Recommendation.campaign_id == campaign_id)
    if status:
        query = query.where(Recommendation.status == status.upper())
    query = query.order_by(Recommendation.priority.asc(), Recommendation.created_at.desc())
    return list((await db.execute(query)).scalars().all())


async def _get_pending_recommendation(
    db: AsyncSession, user: User, recommendation_id: str, new_status: str
) -> Recommendation:
    recommendation = await db.get(Recommendation, recommendation_id)
    if recommendation is None:
        raise NotFoundError("Recommendation not found")

    await get_campaign_for_user(db, user, recommendation.campaign_id)

    if not recommendation.can_transition_to(new_status):
        raise AppError(
            f"Recommendation is already {recommendation.status.lower()}",
            details={"status": recommendation.status},
        )
    return recommendation


async def apply_recommendation(
    db: AsyncSession,
    user: User,
    recommendation_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Recommendation:
    recommendation = await _get_pending_recommendation(db, user, recommendation_id, "APPLIED")

    recommendation.status = "APPLIED"
    recommendation.applied_at = datetime.now(timezone.utc)
    recommendation.applied_by_id = user.id

    await history_service.log_recommendation_action(
        db,
        recommendation_id=recommendation.id,
        recommendation_title=recommendation.title,
        campaign_id=recommendation.campaign_id,
        action=HistoryActions.APPROVE,
        user_id=user.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()
    await db.refresh(recommendation)

    logger.info("recommendation_applied", recommendation_id=recommendation.id, user_id=user.id)
    return recommendation


async def reject_recommendation(
    db: AsyncSession,
    user: User,
    recommendation_id: str,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Recommendation:
    recommendation = await _get_pending_recommendation(db, user, recommendation_id, "REJECTED")

    recommendation.status = "REJECTED"
    recommendation.rejected_at = datetime.now(timezone.utc)
    recommendation.rejected_reason = reason

    await history_service.log_recommendation_action(
        db,
        recommendation_id=recommendation.id,
        recommendation_title=recommendation.title,
        campaign_id=recommendation.campaign_id,
        action=HistoryActions.REJECT,
        user_id=user.id,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()
    await db.refresh(recommendation)

    logger.info("recommendation_rejected", recommendation_id=recommendation.id, user_id=user.id)
    return recommendation
