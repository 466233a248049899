"""
AI API endpoints.

Implements:
- Campaign diagnosis with stored recommendations
- Ad suggestions, headlines, descriptions and A/B variations
- Rewrite of low-performing assets
- Asset group review and ad suggestions for a campaign
- Image analysis
- Recommendation listing, apply and reject
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.middleware.auth import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_manager,
)
from app.middleware.security import limiter
from app.models import User
from app.services import recommendation_service

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ProductInfo(BaseModel):
    """Product or service being advertised."""
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[str] = Field(default=None, max_length=50)
    category: Optional[str] = Field(default=None, max_length=100)
    benefits: list[str] = Field(default_factory=list, max_length=20)
    differentials: list[str] = Field(default_factory=list, max_length=20)


class AudienceInfo(BaseModel):
    demographics: Optional[str] = Field(default=None, max_length=500)
    interests: list[str] = Field(default_factory=list, max_length=20)
    pain_points: list[str] = Field(default_factory=list, max_length=20)


class AdGenerationRequest(BaseModel):
    product: ProductInfo
    audience: Optional[AudienceInfo] = None
    keywords: list[str] = Field(default_factory=list, max_length=50)
    headline_count: int = Field(default=15, ge=3, le=15)
    description_count: int = Field(default=4, ge=2, le=5)


class HeadlineRequest(BaseModel):
    product: ProductInfo
    keywords: list[str] = Field(default_factory=list, max_length=50)
    count: int = Field(default=15, ge=1, le=15)


class DescriptionRequest(BaseModel):
    product: ProductInfo
    count: int = Field(default=4, ge=1, le=5)


class CreativeContext(BaseModel):
    product_name: Optional[str] = Field(default=None, max_length=255)
    audience: Optional[str] = Field(default=None, max_length=500)
    objective: Optional[str] = Field(default=None, max_length=255)
    tone: Optional[str] = Field(default=None, max_length=100)


class AssetToRewrite(BaseModel):
    content: str = Field(min_length=1, max_length=500)
    type: str = Field(default="headline", pattern="^(headline|description)$")
    performance_label: Optional[str] = Field(default=None, max_length=20)


class RewriteRequest(BaseModel):
    assets: list[AssetToRewrite] = Field(min_length=1, max_length=30)
    context: Optional[CreativeContext] = None


class ImageAnalysisRequest(BaseModel):
    image_url: str = Field(min_length=10, max_length=2048)
    context: Optional[CreativeContext] = None


class BaseAd(BaseModel):
    headline1: str = Field(min_length=1, max_length=30)
    headline2: Optional[str] = Field(default=None, max_length=30)
    headline3: Optional[str] = Field(default=None, max_length=30)
    description1: str = Field(min_length=1, max_length=90)
    description2: Optional[str] = Field(default=None, max_length=90)


class VariationsRequest(BaseModel):
    base_ad: BaseAd
    context: Optional[CreativeContext] = None


class CampaignAdsRequest(BaseModel):
    tone: str = Field(default="profissional", max_length=100)
    objective: str = Field(default="vendas", max_length=255)
    keywords: list[str] = Field(default_factory=list, max_length=50)


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


def _context(context: Optional[CreativeContext]) -> dict:
    return context.model_dump() if context else {}


# =============================================================================
# Diagnosis
# =============================================================================

@router.post("/campaigns/{campaign_id}/diagnosis")
@limiter.limit(settings.rate_limit_ai)
async def diagnose_campaign(
    request: Request,
    campaign_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Diagnose a campaign and store its top actions as recommendations."""
    return await recommendation_service.diagnose_campaign(db, manager, campaign_id)


# =============================================================================
# Creative generation
# =============================================================================

@router.post("/generate-ads")
@limiter.limit(settings.rate_limit_ai)
async def generate_ads(
    request: Request,
    data: AdGenerationRequest,
    current_user: User = Depends(get_current_user),
):
    return await recommendation_service.generate_ad_suggestions(
        product=data.product.model_dump(),
        audience=data.audience.model_dump() if data.audience else None,
        keywords=data.keywords,
        headline_count=data.headline_count,
        description_count=data.description_count,
    )


@router.post("/generate-headlines")
@limiter.limit(settings.rate_limit_ai)
async def generate_headlines(
    request: Request,
    data: HeadlineRequest,
    current_user: User = Depends(get_current_user),
):
    headlines = await recommendation_service.generate_headlines(
        data.product.model_dump(), keywords=data.keywords, count=data.count
    )
    return {"headlines": headlines}


@router.post("/generate-descriptions")
@limiter.limit(settings.rate_limit_ai)
async def generate_descriptions(
    request: Request,
    data: DescriptionRequest,
    current_user: User = Depends(get_current_user),
):
    descriptions = await recommendation_service.generate_descriptions(
        data.product.model_dump(), count=data.count
    )
    return {"descriptions": descriptions}


@router.post("/rewrite-assets")
@limiter.limit(settings.rate_limit_ai)
async def rewrite_assets(
    request: Request,
    data: RewriteRequest,
    current_user: User = Depends(get_current_user),
):
    return await recommendation_service.rewrite_assets(
        [asset.model_dump() for asset in data.assets], _context(data.context)
    )


@router.post("/analyze-image")
@limiter.limit(settings.rate_limit_ai)
async def analyze_image(
    request: Request,
    data: ImageAnalysisRequest,
    current_user: User = Depends(get_current_user),
):
    return await recommendation_service.analyze_image(data.image_url, _context(data.context))


@router.post("/generate-variations")
@limiter.limit(settings.rate_limit_ai)
async def generate_variations(
    request: Request,
    data: VariationsRequest,
    current_user: User = Depends(get_current_user),
):
    return await recommendation_service.generate_variations(
        data.base_ad.model_dump(), _context(data.context)
    )


# =============================================================================
# Campaign assets
# =============================================================================

@router.post("/campaigns/{campaign_id}/analyze-assets")
@limiter.limit(settings.rate_limit_ai)
async def analyze_campaign_assets(
    request: Request,
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Score each asset group and, with AI configured, suggest new assets."""
    return await recommendation_service.analyze_campaign_assets(db, current_user, campaign_id)


@router.post("/campaigns/{campaign_id}/suggest-ads")
@limiter.limit(settings.rate_limit_ai)
async def suggest_campaign_ads(
    request: Request,
    campaign_id: str,
    data: Optional[CampaignAdsRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = data or CampaignAdsRequest()
    return await recommendation_service.suggest_campaign_ads(
        db,
        current_user,
        campaign_id,
        tone=data.tone,
        objective=data.objective,
        keywords=data.keywords,
    )


# =============================================================================
# Recommendations
# =============================================================================

@router.get("/campaigns/{campaign_id}/recommendations")
async def list_recommendations(
    campaign_id: str,
    status: Optional[str] = Query(default=None, pattern="^(PENDING|APPLIED|REJECTED)$"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    recommendations = await recommendation_service.list_recommendations(
        db, current_user, campaign_id, status=status
    )
    return {
        "recommendations": [
            recommendation_service.serialize_recommendation(r) for r in recommendations
        ],
        "total": len(recommendations),
    }


@router.post("/recommendations/{recommendation_id}/apply")
async def apply_recommendation(
    recommendation_id: str,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    recommendation = await recommendation_service.apply_recommendation(
        db,
        manager,
        recommendation_id,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    return recommendation_service.serialize_recommendation(recommendation)


@router.post("/recommendations/{recommendation_id}/reject")
async def reject_recommendation(
    recommendation_id: str,
    data: Optional[RejectRequest] = None,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    recommendation = await recommendation_service.reject_recommendation(
        db,
        manager,
        recommendation_id,
        reason=data.reason if data else None,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    return recommendation_service.serialize_recommendation(recommendation)
