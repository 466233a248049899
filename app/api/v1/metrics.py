"""
Metrics API endpoints.

Implements:
- Dashboard totals over every visible campaign
- Daily series of a campaign
- Today vs yesterday with budget progress
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import get_current_user
from app.models import User
from app.services import campaign_service, metrics_service

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await metrics_service.get_dashboard_summary(db, current_user, days=days)


@router.get("/campaigns/{campaign_id}/daily")
async def get_daily_metrics(
    campaign_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    return await metrics_service.get_daily_metrics(
        db, campaign.id, start_date=start_date, end_date=end_date, days=days
    )


@router.get("/campaigns/{campaign_id}/realtime")
async def get_realtime_metrics(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    campaign = await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    return await metrics_service.get_realtime_metrics(db, campaign)
