"""
History Service

Append-only change history:
- Detecting field level changes between two snapshots
- Writing readable history entries for campaigns, budgets, targets and
  recommendations
- Role-scoped queries, statistics and timelines
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models import (
    Campaign,
    ChangeHistory,
    ChangeTypes,
    Client,
    FIELD_LABELS,
    HistoryActions,
    HistoryEntities,
    User,
)
from app.models.history import ACTION_LABELS, ENTITY_LABELS

logger = structlog.get_logger()

# Change type derived from the campaign field that changed
FIELD_CHANGE_TYPES = {
    "budget_daily": ChangeTypes.BUDGET_CHANGE,
    "budget_total": ChangeTypes.BUDGET_CHANGE,
    "target_roas": ChangeTypes.TARGET_ROAS_CHANGE,
    "target_cpa": ChangeTypes.TARGET_CPA_CHANGE,
    "status": ChangeTypes.STATUS_CHANGE,
    "bidding_strategy": ChangeTypes.BIDDING_STRATEGY_CHANGE,
}


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(_serialize(value))


def detect_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    tracked_fields: Optional[Iterable[str]] = None,
) -> list[dict[str, Any]]:
    """
    Compare two snapshots and list the fields whose value changed.

    Only keys present in `new` are considered. Numbers are compared as
    floats so 150 and 150.0 are not reported.
    """
    fields = tracked_fields if tracked_fields is not None else new.keys()
    changes = []
    for field in fields:
        if field not in new:
            continue
        old_value = old.get(field)
        new_value = new.get(field)

        if isinstance(old_value, (int, float)) and isinstance(new_value, (int, float)):
            if float(old_value) == float(new_value):
                continue
        elif old_value == new_value:
            continue

        changes.append({
            "field": field,
            "label": FIELD_LABELS.get(field, field),
            "old_value": _serialize(old_value),
            "new_value": _serialize(new_value),
        })
    return changes


def classify_change(changes: list[dict[str, Any]]) -> str:
    """Pick the change type of the first classified field."""
    for change in changes:
        change_type = FIELD_CHANGE_TYPES.get(change["field"])
        if change_type:
            return change_type
    return ChangeTypes.OTHER


def generate_description(
    action: str,
    entity_type: str,
    entity_name: Optional[str] = None,
    changes: Optional[list[dict[str, Any]]] = None,
) -> str:
    """
    Build a readable sentence for a history entry.

    Up to three changes are listed inline, more are summarized as a count.
    """
    verb = ACTION_LABELS.get(action, action.lower())
    entity = ENTITY_LABELS.get(entity_type, entity_type.lower())
    description = f"{verb.capitalize()} {entity}"
    if entity_name:
        description += f' "{entity_name}"'

    if changes:
        if len(changes) <= 3:
            parts = [
                f"{c['label']}: {c['old_value']} → {c['new_value']}" for c in changes
            ]
            description += f" ({'; '.join(parts)})"
        else:
            description += f" ({len(changes)} campos alterados)"

    return description


async def log_change(
    db: AsyncSession,
    action: str,
    entity_type: str,
    user_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    change_type: Optional[str] = None,
    changes: Optional[list[dict[str, Any]]] = None,
    description: Optional[str] = None,
    extra_data: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ChangeHistory:
    """
    Append a history entry.

    The caller's transaction is flushed, not committed, so the entry is
    persisted together with the change it describes.
    """
    changes = changes or []
    entry = ChangeHistory(
        campaign_id=campaign_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        change_type=change_type or classify_change(changes),
        field=changes[0]["field"] if len(changes) == 1 else None,
        old_value=_as_text(changes[0]["old_value"]) if len(changes) == 1 else None,
        new_value=_as_text(changes[0]["new_value"]) if len(changes) == 1 else None,
        changes=changes,
        description=description or generate_description(action, entity_type, entity_name, changes),
        extra_data=extra_data or {},
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
    )
    db.add(entry)
    await db.flush()

    logger.info(
        "history_logged",
        history_id=entry.id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
    )
    return entry


async def log_campaign_change(
    db: AsyncSession,
    campaign: Campaign,
    action: str,
    user_id: Optional[str] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
    tracked_fields: Optional[Iterable[str]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[ChangeHistory]:
    """
    Log a campaign create/update/delete.

    Returns None for an UPDATE that changed none of the tracked fields.
    """
    changes: list[dict[str, Any]] = []
    if action == HistoryActions.UPDATE:
        changes = detect_changes(old_values or {}, new_values or {}, tracked_fields)
        if not changes:
            return None
        if len(changes) == 1 and changes[0]["field"] == "status":
            action = HistoryActions.STATUS_CHANGE

    return await log_change(
        db,
        action=action,
        entity_type=HistoryEntities.CAMPAIGN,
        user_id=user_id,
        # A deleted campaign's row is gone, keep the audit entry anyway
        campaign_id=None if action == HistoryActions.DELETE else campaign.id,
        entity_id=campaign.id,
        entity_name=campaign.name,
        changes=changes,
        extra_data={"google_campaign_id": campaign.google_campaign_id},
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def log_budget_change(
    db: AsyncSession,
    campaign: Campaign,
    old_budget: Optional[float],
    new_budget: Optional[float],
    user_id: Optional[str] = None,
    field: str = "budget_daily",
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ChangeHistory:
    """Log a budget change with its percent variation."""
    percent_change = None
    if old_budget:
        percent_change = round(((new_budget or 0) - old_budget) / old_budget * 100, 2)

    changes = [{
        "field": field,
        "label": FIELD_LABELS.get(field, field),
        "old_value": old_budget,
        "new_value": new_budget,
    }]
    description = generate_description(
        HistoryActions.UPDATE, HistoryEntities.BUDGET, campaign.name, changes
    )
    if percent_change is not None:
        description += f" [{percent_change:+.1f}%]"

    return await log_change(
        db,
        action=HistoryActions.UPDATE,
        entity_type=HistoryEntities.BUDGET,
        user_id=user_id,
        campaign_id=campaign.id,
        entity_id=campaign.id,
        entity_name=campaign.name,
        change_type=ChangeTypes.BUDGET_CHANGE,
        changes=changes,
        description=description,
        extra_data={"percent_change": percent_change},
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def log_target_change(
    db: AsyncSession,
    campaign: Campaign,
    field: str,
    old_value: Optional[float],
    new_value: Optional[float],
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ChangeHistory:
    """Log a target ROAS / target CPA change."""
    changes = [{
        "field": field,
        "label": FIELD_LABELS.get(field, field),
        "old_value": old_value,
        "new_value": new_value,
    }]
    return await log_change(
        db,
        action=HistoryActions.UPDATE,
        entity_type=HistoryEntities.TARGET,
        user_id=user_id,
        campaign_id=campaign.id,
        entity_id=campaign.id,
        entity_name=campaign.name,
        change_type=FIELD_CHANGE_TYPES.get(field, ChangeTypes.OTHER),
        changes=changes,
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def log_recommendation_action(
    db: AsyncSession,
    recommendation_id: str,
    recommendation_title: str,
    campaign_id: str,
    action: str,
    user_id: Optional[str] = None,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ChangeHistory:
    """Log a recommendation being applied (APPROVE) or rejected (REJECT)."""
    return await log_change(
        db,
        action=action,
        entity_type=HistoryEntities.RECOMMENDATION,
        user_id=user_id,
        campaign_id=campaign_id,
        entity_id=recommendation_id,
        entity_name=recommendation_title,
        extra_data={"reason": reason} if reason else {},
        ip_address=ip_address,
        user_agent=user_agent,
    )


# =============================================================================
# Queries
# =============================================================================

def _visible_campaign_ids(user: User):
    """Subquery of the campaign ids the user may see."""
    query = select(Campaign.id).join(Client, Campaign.client_id == Client.id)
    if user.is_manager:
        return query.where(Client.manager_id == user.id)
    return query.where(Client.linked_to(user))


def _scope_condition(user: User):
    """Managers see their own entries and their clients' campaigns; clients see their campaigns."""
    campaign_scope = ChangeHistory.campaign_id.in_(_visible_campaign_ids(user))
    return campaign_scope | (ChangeHistory.user_id == user.id)


def _build_filters(
    user: User,
    campaign_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    change_type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> list:
    conditions = [_scope_condition(user)]
    if campaign_id:
        conditions.append(ChangeHistory.campaign_id == campaign_id)
    if user_id:
        conditions.append(ChangeHistory.user_id == user_id)
    if action:
        conditions.append(ChangeHistory.action == action)
    if entity_type:
        conditions.append(ChangeHistory.entity_type == entity_type)
    if change_type:
        conditions.append(ChangeHistory.change_type == change_type)
    if start_date:
        conditions.append(ChangeHistory.created_at >= start_date)
    if end_date:
        conditions.append(ChangeHistory.created_at <= end_date)
    return conditions


async def list_history(
    db: AsyncSession,
    user: User,
    page: int = 1,
    limit: int = 20,
    **filters,
) -> tuple[list[ChangeHistory], int]:
    """
    List history entries visible to the user, newest first.

    Returns:
        Tuple of (entries, total count)
    """
    conditions = _build_filters(user, **filters)

    total = (
        await db.execute(select(func.count(ChangeHistory.id)).where(and_(*conditions)))
    ).scalar() or 0

    result = await db.execute(
        select(ChangeHistory)
        .where(and_(*conditions))
        .order_by(ChangeHistory.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def get_recent_history(
    db: AsyncSession, user: User, hours: int = 24, limit: int = 50
) -> list[ChangeHistory]:
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    result = await db.execute(
        select(ChangeHistory)
        .where(_scope_condition(user), ChangeHistory.created_at >= since)
        .order_by(ChangeHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_history_entry(db: AsyncSession, user: User, history_id: str) -> ChangeHistory:
    result = await db.execute(
        select(ChangeHistory).where(ChangeHistory.id == history_id, _scope_condition(user))
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("History entry not found")
    return entry


async def get_entity_history(
    db: AsyncSession, user: User, entity_type: str, entity_id: str, limit: int = 50
) -> list[ChangeHistory]:
    result = await db.execute(
        select(ChangeHistory)
        .where(
            _scope_condition(user),
            ChangeHistory.entity_type == entity_type,
            ChangeHistory.entity_id == entity_id,
        )
        .order_by(ChangeHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_campaign_timeline(
    db: AsyncSession, user: User, campaign_id: str, days: int = 30
) -> list[dict[str, Any]]:
    """Campaign history grouped by day, newest day first."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    result = await db.execute(
        select(ChangeHistory)
        .where(
            _scope_condition(user),
            ChangeHistory.campaign_id == campaign_id,
            ChangeHistory.created_at >= since,
        )
        .order_by(ChangeHistory.created_at.desc())
    )

    grouped: dict[str, list[ChangeHistory]] = defaultdict(list)
    for entry in result.scalars().all():
        grouped[entry.created_at.date().isoformat()].append(entry)

    return [
        {"date": day, "count": len(entries), "entries": entries}
        for day, entries in grouped.items()
    ]


async def get_user_activity(
    db: AsyncSession,
    manager: User,
    user_id: str,
    days: int = 30,
    limit: int = 100,
) -> list[ChangeHistory]:
    """Entries written by a user, for the manager who owns that user."""
    if user_id != manager.id:
        target = await db.get(User, user_id)
        if target is None:
            raise NotFoundError("User not found")
        if target.manager_id != manager.id:
            raise PermissionDeniedError("You do not manage this user")

    since = datetime.now(timezone.utc) - timedelta(days=days)
    result = await db.execute(
        select(ChangeHistory)
        .where(ChangeHistory.user_id == user_id, ChangeHistory.created_at >= since)
        .order_by(ChangeHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_history_stats(db: AsyncSession, user: User, days: int = 30) -> dict[str, Any]:
    """Totals by action, entity type and day, plus the most changed campaigns."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    conditions = [_scope_condition(user), ChangeHistory.created_at >= since]

    total = (
        await db.execute(select(func.count(ChangeHistory.id)).where(*conditions))
    ).scalar() or 0

    by_action = await db.execute(
        select(ChangeHistory.action, func.count(ChangeHistory.id))
        .where(*conditions)
        .group_by(ChangeHistory.action)
    )
    by_entity = await db.execute(
        select(ChangeHistory.entity_type, func.count(ChangeHistory.id))
        .where(*conditions)
        .group_by(ChangeHistory.entity_type)
    )

    created_rows = await db.execute(select(ChangeHistory.created_at).where(*conditions))
    by_day: dict[str, int] = defaultdict(int)
    for (created_at,) in created_rows.all():
        by_day[created_at.date().isoformat()] += 1

    top_campaigns = await db.execute(
        select(Campaign.id, Campaign.name, func.count(ChangeHistory.id).label("changes"))
        .join(Campaign, Campaign.id == ChangeHistory.campaign_id)
        .where(*conditions)
        .group_by(Campaign.id, Campaign.name)
        .order_by(func.count(ChangeHistory.id).desc())
        .limit(5)
    )

    return {
        "total": total,
        "period_days": days,
        "by_action": {action: count for action, count in by_action.all()},
        "by_entity_type": {entity: count for entity, count in by_entity.all()},
        "by_day": dict(sorted(by_day.items())),
        "top_campaigns": [
            {"campaign_id": cid, "name": name, "changes": count}
            for cid, name, count in top_campaigns.all()
        ],
    }


def serialize_entry(entry: ChangeHistory) -> dict[str, Any]:
    return {
        "id": entry.id,
        "campaign_id": entry.campaign_id,
        "user_id": entry.user_id,
        "action": entry.action,
        "action_label": ACTION_LABELS.get(entry.action, entry.action),
        "entity_type": entry.entity_type,
        "entity_label": ENTITY_LABELS.get(entry.entity_type, entry.entity_type),
        "entity_id": entry.entity_id,
        "entity_name": entry.entity_name,
        "change_type": entry.change_type,
        "field": entry.field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "changes": entry.changes or [],
        "description": entry.description,
        "extra_data": entry.extra_data or {},
        "ip_address": entry.ip_address,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
