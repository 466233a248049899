"""
Alerts API endpoints.

Provides endpoints for performance alerts raised by the campaign analysis:
- Listing with filters and statistics
- Read, acknowledge, resolve and dismiss transitions
- On-demand analysis of one or all campaigns
"""

import math
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import get_current_user, require_manager
from app.middleware.security import limiter
from app.models import AlertPriority, AlertStatus, AlertTypes, User
from app.services import alerts_service, campaign_service

logger = structlog.get_logger()

router = APIRouter()

STATUS_PATTERN = "^(" + "|".join(AlertStatus.ALL) + ")$"
PRIORITY_PATTERN = "^(" + "|".join(AlertPriority.ALL) + ")$"
TYPE_PATTERN = "^(" + "|".join(AlertTypes.ALL) + ")$"


# =============================================================================
# Request/Response Schemas
# =============================================================================

class MarkReadRequest(BaseModel):
    """Alert ids to mark as read; all unread alerts when omitted."""
    alert_ids: Optional[list[str]] = Field(default=None, max_length=500)


def _page(rows, total: int, page: int, limit: int) -> dict:
    return {
        "alerts": [alerts_service.serialize_alert(alert, name) for alert, name in rows],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


# =============================================================================
# Queries
# =============================================================================

@router.get("")
async def list_alerts(
    status: Optional[str] = Query(default=None, pattern=STATUS_PATTERN),
    priority: Optional[str] = Query(default=None, pattern=PRIORITY_PATTERN),
    alert_type: Optional[str] = Query(default=None, pattern=TYPE_PATTERN),
    campaign_id: Optional[str] = None,
    is_read: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List alerts, unread first, then by priority, newest first."""
    rows, total = await alerts_service.list_alerts(
        db,
        current_user,
        page=page,
        limit=limit,
        status=status,
        priority=priority,
        alert_type=alert_type,
        campaign_id=campaign_id,
        is_read=is_read,
        start_date=start_date,
        end_date=end_date,
    )
    return _page(rows, total, page, limit)


@router.get("/stats")
async def get_alert_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await alerts_service.get_alert_stats(db, current_user)


@router.get("/thresholds")
async def get_thresholds(current_user: User = Depends(get_current_user)):
    return alerts_service.get_thresholds()


@router.get("/campaign/{campaign_id}")
async def list_campaign_alerts(
    campaign_id: str,
    status: Optional[str] = Query(default=None, pattern=STATUS_PATTERN),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    rows, total = await alerts_service.list_alerts(
        db, current_user, page=page, limit=limit, status=status, campaign_id=campaign_id
    )
    return _page(rows, total, page, limit)


# =============================================================================
# Analysis
# =============================================================================

@router.post("/analyze/{campaign_id}")
@limiter.limit("10/minute")
async def analyze_campaign(
    request: Request,
    campaign_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Run the alert rules on one campaign now."""
    await campaign_service.get_campaign_for_user(db, manager, campaign_id)
    return await alerts_service.analyze_campaign(db, campaign_id)


@router.post("/analyze-all")
@limiter.limit("2/minute")
async def analyze_all_campaigns(
    request: Request,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Run the alert rules on every enabled campaign of the manager."""
    return await alerts_service.run_daily_alert_analysis(db, manager_id=manager.id)


# =============================================================================
# Transitions
# =============================================================================

@router.post("/read")
async def mark_alerts_read(
    data: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await alerts_service.mark_as_read(db, current_user, data.alert_ids)
    return {"updated_count": updated}


@router.get("/{alert_id}")
async def get_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    alert = await alerts_service.get_alert(db, current_user, alert_id)
    return alerts_service.serialize_alert(alert)


@router.post("/{alert_id}/read")
async def mark_alert_read(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await alerts_service.get_alert(db, current_user, alert_id)
    updated = await alerts_service.mark_as_read(db, current_user, [alert_id])
    return {"updated_count": updated}


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    alert = await alerts_service.acknowledge_alert(db, current_user, alert_id)
    return alerts_service.serialize_alert(alert)


@router.post("/{alert_id}/resolve")
async def resolve_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    alert = await alerts_service.resolve_alert(db, current_user, alert_id)
    return alerts_service.serialize_alert(alert)


@router.post("/{alert_id}/dismiss")
async def dismiss_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    alert = await alerts_service.dismiss_alert(db, current_user, alert_id)
    return alerts_service.serialize_alert(alert)


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await alerts_service.delete_alert(db, current_user, alert_id)
    return {"message": "Alert deleted successfully"}
