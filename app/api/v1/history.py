"""
Change History API endpoints.

Read access to the audit trail, scoped to the campaigns the user can see,
plus manual entries for changes made outside the platform.
"""

import math
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_manager,
)
from app.models import FIELD_LABELS, ChangeTypes, HistoryActions, HistoryEntities, User
from app.models.history import ACTION_LABELS, ENTITY_LABELS
from app.services import campaign_service, history_service

router = APIRouter()

ACTION_PATTERN = "^(" + "|".join(HistoryActions.ALL) + ")$"
ENTITY_PATTERN = "^(" + "|".join(HistoryEntities.ALL) + ")$"
CHANGE_TYPE_PATTERN = "^(" + "|".join(ChangeTypes.ALL) + ")$"


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ChangeItem(BaseModel):
    field: str = Field(min_length=1, max_length=100)
    label: Optional[str] = Field(default=None, max_length=100)
    old_value: Any = None
    new_value: Any = None


class HistoryCreate(BaseModel):
    """Manual history entry."""
    action: str = Field(pattern=ACTION_PATTERN)
    entity_type: str = Field(pattern=ENTITY_PATTERN)
    campaign_id: Optional[str] = None
    entity_id: Optional[str] = Field(default=None, max_length=100)
    entity_name: Optional[str] = Field(default=None, max_length=255)
    change_type: Optional[str] = Field(default=None, pattern=CHANGE_TYPE_PATTERN)
    changes: list[ChangeItem] = Field(default_factory=list, max_length=50)
    description: Optional[str] = Field(default=None, max_length=2000)
    extra_data: dict[str, Any] = Field(default_factory=dict)


def _entries(entries) -> list[dict]:
    return [history_service.serialize_entry(entry) for entry in entries]


# =============================================================================
# Queries
# =============================================================================

@router.get("")
async def list_history(
    campaign_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = Query(default=None, pattern=ACTION_PATTERN),
    entity_type: Optional[str] = Query(default=None, pattern=ENTITY_PATTERN),
    change_type: Optional[str] = Query(default=None, pattern=CHANGE_TYPE_PATTERN),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries, total = await history_service.list_history(
        db,
        current_user,
        page=page,
        limit=limit,
        campaign_id=campaign_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        change_type=change_type,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "history": _entries(entries),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/recent")
async def get_recent_history(
    hours: int = Query(default=24, ge=1, le=168),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await history_service.get_recent_history(db, current_user, hours=hours, limit=limit)
    return {"history": _entries(entries), "total": len(entries), "hours": hours}


@router.get("/stats")
async def get_history_stats(
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await history_service.get_history_stats(db, current_user, days=days)


@router.get("/entity-types")
async def get_entity_types(current_user: User = Depends(get_current_user)):
    return {
        "entity_types": [
            {"value": entity, "label": ENTITY_LABELS.get(entity, entity)}
            for entity in HistoryEntities.ALL
        ]
    }


@router.get("/action-types")
async def get_action_types(current_user: User = Depends(get_current_user)):
    return {
        "action_types": [
            {"value": action, "label": ACTION_LABELS.get(action, action)}
            for action in HistoryActions.ALL
        ]
    }


@router.get("/entity/{entity_type}/{entity_id}")
async def get_entity_history(
    entity_type: str,
    entity_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await history_service.get_entity_history(
        db, current_user, entity_type.upper(), entity_id, limit=limit
    )
    return {"history": _entries(entries), "total": len(entries)}


@router.get("/campaign/{campaign_id}")
async def get_campaign_history(
    campaign_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    entries, total = await history_service.list_history(
        db, current_user, page=page, limit=limit, campaign_id=campaign_id
    )
    return {
        "history": _entries(entries),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/campaign/{campaign_id}/timeline")
async def get_campaign_timeline(
    campaign_id: str,
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Campaign history grouped by day."""
    await campaign_service.get_campaign_for_user(db, current_user, campaign_id)
    timeline = await history_service.get_campaign_timeline(
        db, current_user, campaign_id, days=days
    )
    return {
        "campaign_id": campaign_id,
        "days": days,
        "timeline": [
            {"date": day["date"], "count": day["count"], "entries": _entries(day["entries"])}
            for day in timeline
        ],
    }


@router.get("/user/{user_id}/activity")
async def get_user_activity(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=100, ge=1, le=500),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    entries = await history_service.get_user_activity(
        db, manager, user_id, days=days, limit=limit
    )
    return {"user_id": user_id, "history": _entries(entries), "total": len(entries)}


@router.get("/{history_id}")
async def get_history_entry(
    history_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await history_service.get_history_entry(db, current_user, history_id)
    return history_service.serialize_entry(entry)


# =============================================================================
# Manual entries
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_history_entry(
    data: HistoryCreate,
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Record a change made outside the platform, e.g. directly in Google Ads."""
    if data.campaign_id:
        await campaign_service.get_campaign_for_user(db, current_user, data.campaign_id)

    changes = [
        {
            "field": item.field,
            "label": item.label or FIELD_LABELS.get(item.field, item.field),
            "old_value": item.old_value,
            "new_value": item.new_value,
        }
        for item in data.changes
    ]
    entry = await history_service.log_change(
        db,
        action=data.action,
        entity_type=data.entity_type,
        user_id=current_user.id,
        campaign_id=data.campaign_id,
        entity_id=data.entity_id,
        entity_name=data.entity_name,
        change_type=data.change_type,
        changes=changes,
        description=data.description,
        extra_data={**data.extra_data, "source": "manual"},
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    await db.commit()
    await db.refresh(entry)
    return history_service.serialize_entry(entry)
