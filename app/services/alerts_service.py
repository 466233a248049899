"""
Alerts Service

Detects performance problems in campaign metrics and manages the alerts
raised for them:
- Pure detectors comparing metrics against thresholds
- Campaign analysis with one alert per condition per day
- Delivery by socket push, e-mail and chat
- Listing, statistics and status transitions
"""

import calendar
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app import realtime
from app.config import settings
from app.core.exceptions import AppError, NotFoundError
from app.models import (
    PRIORITY_RANK,
    Alert,
    AlertPriority,
    AlertStatus,
    AlertTypes,
    Campaign,
    CampaignMetric,
    Client,
    User,
)
from app.services import chat_service, notification_service
from app.services.campaign_service import campaign_scope_condition
from app.services.metrics_service import summarize_metrics
from app.services.notification_service import format_currency

logger = structlog.get_logger()


@dataclass
class AlertEvaluation:
    """A detected alert condition, not yet persisted."""
    alert_type: str
    priority: str
    title: str
    message: str
    metric_name: str
    current_value: float
    threshold_value: Optional[float] = None
    previous_value: Optional[float] = None
    data: dict = field(default_factory=dict)


def get_thresholds() -> dict[str, float]:
    """Thresholds currently applied by the detectors."""
    return {
        "roas_drop_percent": settings.alert_roas_drop_percent,
        "cpa_above_target_percent": settings.alert_cpa_above_target_percent,
        "budget_lost_is_percent": settings.alert_budget_lost_is_percent,
        "rank_lost_is_percent": settings.alert_rank_lost_is_percent,
        "ctr_decline_weeks": settings.alert_ctr_decline_weeks,
        "ctr_decline_min_percent": settings.alert_ctr_decline_min_percent,
        "burn_rate": settings.alert_burn_rate,
    }


def calculate_percent_change(current: Optional[float], previous: Optional[float]) -> float:
    if not previous:
        return 0.0
    return ((current or 0) - previous) / previous * 100


def determine_priority(alert_type: str, magnitude: float) -> str:
    """Map the size of a deviation (in %) to a priority."""
    value = abs(magnitude)

    if alert_type in (AlertTypes.BURN_RATE, AlertTypes.BUDGET_LOSS, AlertTypes.RANKING_LOSS):
        if value >= 60:
            return AlertPriority.CRITICAL
        if value >= 40:
            return AlertPriority.HIGH
        return AlertPriority.MEDIUM

    if value >= 50:
        return AlertPriority.CRITICAL
    if value >= 30:
        return AlertPriority.HIGH
    if value >= 20:
        return AlertPriority.MEDIUM
    return AlertPriority.LOW


def _as_percent(value: float) -> float:
    # Google Ads reports impression share as a fraction
    return value if value > 1 else value * 100


# =============================================================================
# Detectors
# =============================================================================

def detect_roas_drop(
    current_roas: Optional[float],
    previous_roas: Optional[float],
    threshold: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """ROAS fell more than `threshold`% against the previous period."""
    threshold = threshold if threshold is not None else settings.alert_roas_drop_percent
    if not current_roas or not previous_roas:
        return None

    change = calculate_percent_change(current_roas, previous_roas)
    if change >= -threshold:
        return None

    drop = abs(change)
    return AlertEvaluation(
        alert_type=AlertTypes.ROAS_DROP,
        priority=determine_priority(AlertTypes.ROAS_DROP, drop),
        title=f"Queda de ROAS: {campaign_name}",
        message=(
            f"O ROAS caiu {drop:.1f}% em relação ao período anterior. "
            f"ROAS atual: {current_roas:.2f}x, anterior: {previous_roas:.2f}x"
        ),
        metric_name="roas",
        current_value=round(current_roas, 4),
        threshold_value=threshold,
        previous_value=round(previous_roas, 4),
        data={"drop_percent": round(drop, 2)},
    )


def detect_high_cpa(
    current_cpa: Optional[float],
    target_cpa: Optional[float],
    threshold: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """CPA more than `threshold`% above the campaign target."""
    threshold = threshold if threshold is not None else settings.alert_cpa_above_target_percent
    if not target_cpa or not current_cpa:
        return None

    above = calculate_percent_change(current_cpa, target_cpa)
    if above <= threshold:
        return None

    return AlertEvaluation(
        alert_type=AlertTypes.CPA_INCREASE,
        priority=determine_priority(AlertTypes.CPA_INCREASE, above),
        title=f"CPA Alto: {campaign_name}",
        message=(
            f"O CPA está {above:.1f}% acima da meta. "
            f"CPA atual: {format_currency(current_cpa)}, meta: {format_currency(target_cpa)}"
        ),
        metric_name="cpa",
        current_value=round(current_cpa, 2),
        threshold_value=round(target_cpa * (1 + threshold / 100), 2),
        previous_value=target_cpa,
        data={"percent_above": round(above, 2)},
    )


def detect_budget_loss(
    lost_is: Optional[float],
    threshold: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """Impression share lost to budget at or above `threshold`%."""
    threshold = threshold if threshold is not None else settings.alert_budget_lost_is_percent
    if lost_is is None:
        return None

    lost = _as_percent(lost_is)
    if lost < threshold:
        return None

    return AlertEvaluation(
        alert_type=AlertTypes.BUDGET_LOSS,
        priority=determine_priority(AlertTypes.BUDGET_LOSS, lost),
        title=f"Perda de Impressões por Orçamento: {campaign_name}",
        message=(
            f"Você está perdendo {lost:.1f}% das impressões por orçamento limitado. "
            "Considere aumentar o orçamento diário para capturar mais oportunidades."
        ),
        metric_name="search_budget_lost_is",
        current_value=round(lost, 2),
        threshold_value=threshold,
    )


def detect_ranking_loss(
    lost_is: Optional[float],
    threshold: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """Impression share lost to ad rank at or above `threshold`%."""
    threshold = threshold if threshold is not None else settings.alert_rank_lost_is_percent
    if lost_is is None:
        return None

    lost = _as_percent(lost_is)
    if lost < threshold:
        return None

    return AlertEvaluation(
        alert_type=AlertTypes.RANKING_LOSS,
        priority=determine_priority(AlertTypes.RANKING_LOSS, lost),
        title=f"Perda de Impressões por Ranking: {campaign_name}",
        message=(
            f"Você está perdendo {lost:.1f}% das impressões por ranking baixo. "
            "Revise a qualidade dos anúncios e considere ajustar os lances."
        ),
        metric_name="search_rank_lost_is",
        current_value=round(lost, 2),
        threshold_value=threshold,
    )


def detect_ctr_decline(
    weekly_ctrs: list[float],
    weeks: Optional[int] = None,
    min_drop: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """
    CTR falling week over week.

    Args:
        weekly_ctrs: Weekly CTR (%), most recent first
        weeks: Weeks the decline must span
        min_drop: Minimum drop (%) for a week to count
    """
    weeks = weeks or settings.alert_ctr_decline_weeks
    min_drop = min_drop if min_drop is not None else settings.alert_ctr_decline_min_percent
    if len(weekly_ctrs) < weeks:
        return None

    drops = 0
    for current, previous in zip(weekly_ctrs, weekly_ctrs[1:]):
        if not current or not previous:
            break
        if calculate_percent_change(current, previous) >= -min_drop:
            break
        drops += 1
        if drops >= weeks - 1:
            break

    if drops < weeks - 1:
        return None

    latest, oldest = weekly_ctrs[0], weekly_ctrs[weeks - 1]
    overall = abs(calculate_percent_change(latest, oldest))
    return AlertEvaluation(
        alert_type=AlertTypes.CTR_DECLINE,
        priority=determine_priority(AlertTypes.CTR_DECLINE, overall),
        title=f"CTR em Declínio: {campaign_name}",
        message=(
            f"O CTR está caindo há {weeks} semanas consecutivas, com queda total de "
            f"{overall:.1f}%. CTR atual: {latest:.2f}%, CTR há {weeks} semanas: {oldest:.2f}%"
        ),
        metric_name="ctr",
        current_value=round(latest, 4),
        threshold_value=min_drop,
        previous_value=round(oldest, 4),
        data={
            "consecutive_drops": drops + 1,
            "overall_drop_percent": round(overall, 2),
            "weekly_ctrs": [round(ctr, 4) for ctr in weekly_ctrs[:weeks]],
        },
    )


def detect_burn_rate(
    budget_daily: Optional[float],
    month_spend: Optional[float],
    today: Optional[date] = None,
    threshold: Optional[float] = None,
    campaign_name: str = "",
) -> Optional[AlertEvaluation]:
    """Month-to-date spend running ahead of the pro-rated monthly budget."""
    threshold = threshold if threshold is not None else settings.alert_burn_rate
    monthly_budget = float(budget_daily or 0) * 30.4
    if not monthly_budget or not month_spend:
        return None

    today = today or date.today()
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    elapsed = today.day / days_in_month
    expected_spend = monthly_budget * elapsed
    burn_rate = month_spend / expected_spend

    if burn_rate < threshold:
        return None

    if burn_rate >= 1.5:
        priority = AlertPriority.CRITICAL
    elif burn_rate >= 1.3:
        priority = AlertPriority.HIGH
    else:
        priority = AlertPriority.MEDIUM

    projected = month_spend / elapsed
    return AlertEvaluation(
        alert_type=AlertTypes.BURN_RATE,
        priority=priority,
        title=f"Burn Rate Alto: {campaign_name}",
        message=(
            f"O gasto está {(burn_rate - 1) * 100:.0f}% acima do ritmo ideal. "
            f"Gasto atual: {format_currency(month_spend)} "
            f"(esperado: {format_currency(expected_spend)}). "
            f"Se continuar assim, vai gastar {format_currency(projected)} no mês "
            f"(orçamento: {format_currency(monthly_budget)})."
        ),
        metric_name="burn_rate",
        current_value=round(burn_rate, 4),
        threshold_value=threshold,
        previous_value=1.0,
        data={
            "actual_spend": round(month_spend, 2),
            "expected_spend": round(expected_spend, 2),
            "monthly_budget": round(monthly_budget, 2),
            "projected_monthly_spend": round(projected, 2),
            "projected_overspend": round(projected - monthly_budget, 2),
            "day_of_month": today.day,
            "days_in_month": days_in_month,
        },
    )


# =============================================================================
# Analysis
# =============================================================================

async def _metric_rows(
    db: AsyncSession, campaign_id: str, start: date, end: date
) -> list[CampaignMetric]:
    result = await db.execute(
        select(CampaignMetric).where(
            CampaignMetric.campaign_id == campaign_id,
            CampaignMetric.date >= start,
            CampaignMetric.date <= end,
        )
    )
    return list(result.scalars().all())


def _average(values: list[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


async def evaluate_campaign(
    db: AsyncSession, campaign: Campaign, today: Optional[date] = None
) -> list[AlertEvaluation]:
    """Run every detector over the campaign's stored metrics."""
    today = today or date.today()

    current_rows = await _metric_rows(db, campaign.id, today - timedelta(days=6), today)
    previous_rows = await _metric_rows(
        db, campaign.id, today - timedelta(days=13), today - timedelta(days=7)
    )
    current = summarize_metrics(current_rows)
    previous = summarize_metrics(previous_rows)

    weekly_ctrs = []
    for week in range(4):
        end = today - timedelta(days=7 * week)
        rows = await _metric_rows(db, campaign.id, end - timedelta(days=6), end)
        if not rows:
            break
        weekly_ctrs.append(summarize_metrics(rows)["ctr"])

    month_spend = (
        await db.execute(
            select(func.sum(CampaignMetric.cost)).where(
                CampaignMetric.campaign_id == campaign.id,
                CampaignMetric.date >= today.replace(day=1),
                CampaignMetric.date <= today,
            )
        )
    ).scalar() or 0.0

    name = campaign.name
    evaluations = [
        detect_roas_drop(current["roas"], previous["roas"], campaign_name=name),
        detect_high_cpa(current["cpa"], campaign.target_cpa, campaign_name=name),
        detect_budget_loss(
            _average([r.search_budget_lost_is for r in current_rows]), campaign_name=name
        ),
        detect_ranking_loss(
            _average([r.search_rank_lost_is for r in current_rows]), campaign_name=name
        ),
        detect_ctr_decline(weekly_ctrs, campaign_name=name),
        detect_burn_rate(campaign.budget_daily, month_spend, today=today, campaign_name=name),
    ]
    return [e for e in evaluations if e is not None]


async def create_or_refresh_alert(
    db: AsyncSession,
    evaluation: AlertEvaluation,
    campaign_id: str,
    user_id: str,
) -> tuple[Alert, bool]:
    """
    Persist an evaluation, reusing an active alert from the last 24 hours.

    The existing alert is only rewritten when its current value moved by
    more than 0.1.

    Returns:
        Tuple of (alert, created)
    """
    since = datetime.now(timezone.utc) - timedelta(hours=24)
    result = await db.execute(
        select(Alert)
        .where(
            Alert.campaign_id == campaign_id,
            Alert.alert_type == evaluation.alert_type,
            Alert.status == AlertStatus.ACTIVE,
            Alert.created_at >= since,
        )
        .order_by(Alert.created_at.desc())
        .limit(1)
    )
    existing = result.scalar_one_or_none()

    if existing:
        if abs((existing.current_value or 0) - (evaluation.current_value or 0)) > 0.1:
            existing.current_value = evaluation.current_value
            existing.previous_value = evaluation.previous_value
            existing.message = evaluation.message
            existing.priority = evaluation.priority
            existing.data = evaluation.data
            await db.flush()
            logger.info("alert_refreshed", alert_id=existing.id, alert_type=existing.alert_type)
        return existing, False

    alert = Alert(
        campaign_id=campaign_id,
        user_id=user_id,
        alert_type=evaluation.alert_type,
        priority=evaluation.priority,
        status=AlertStatus.ACTIVE,
        title=evaluation.title,
        message=evaluation.message,
        metric_name=evaluation.metric_name,
        current_value=evaluation.current_value,
        threshold_value=evaluation.threshold_value,
        previous_value=evaluation.previous_value,
        data=evaluation.data,
    )
    db.add(alert)
    await db.flush()

    logger.info(
        "alert_created",
        alert_id=alert.id,
        campaign_id=campaign_id,
        alert_type=alert.alert_type,
        priority=alert.priority,
    )
    return alert, True


def serialize_alert(alert: Alert, campaign_name: Optional[str] = None) -> dict[str, Any]:
    return {
        "id": alert.id,
        "campaign_id": alert.campaign_id,
        "campaign_name": campaign_name,
        "alert_type": alert.alert_type,
        "priority": alert.priority,
        "status": alert.status,
        "title": alert.title,
        "message": alert.message,
        "metric_name": alert.metric_name,
        "current_value": alert.current_value,
        "threshold_value": alert.threshold_value,
        "previous_value": alert.previous_value,
        "data": alert.data or {},
        "is_read": alert.is_read,
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
    }


async def dispatch_alert(db: AsyncSession, alert: Alert, campaign: Campaign) -> Alert:
    """
    Deliver an alert to its manager: socket push, e-mail, then chat.

    `campaign.client.manager` must be loaded.
    """
    await realtime.emit_to_user(alert.user_id, "new_alert", serialize_alert(alert, campaign.name))

    manager = campaign.client.manager
    if manager and manager.email:
        alert.email_sent = await notification_service.send_alert_email(
            alert, to_email=manager.email, campaign_name=campaign.name
        )

    message = await chat_service.post_alert_message(db, alert, campaign.client)
    alert.chat_sent = message is not None

    await db.commit()
    logger.info(
        "alert_dispatched",
        alert_id=alert.id,
        email_sent=alert.email_sent,
        chat_sent=alert.chat_sent,
    )
    return alert


async def _load_campaign(db: AsyncSession, campaign_id: str) -> Optional[Campaign]:
    result = await db.execute(
        select(Campaign)
        .options(selectinload(Campaign.client).selectinload(Client.manager))
        .where(Campaign.id == campaign_id)
        # The campaign may already sit in the session without its manager
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def analyze_campaign(
    db: AsyncSession, campaign_id: str, dispatch: bool = True
) -> dict[str, Any]:
    """
    Evaluate one campaign and persist its alerts.

    New alerts are assigned to the client's manager and dispatched.
    """
    campaign = await _load_campaign(db, campaign_id)
    if not campaign:
        raise NotFoundError("Campaign not found")

    evaluations = await evaluate_campaign(db, campaign)

    created: list[Alert] = []
    refreshed: list[Alert] = []
    for evaluation in evaluations:
        alert, is_new = await create_or_refresh_alert(
            db, evaluation, campaign.id, campaign.client.manager_id
        )
        (created if is_new else refreshed).append(alert)
    await db.commit()

    if dispatch:
        for alert in created:
            await dispatch_alert(db, alert, campaign)

    logger.info(
        "campaign_analyzed",
        campaign_id=campaign.id,
        detected=len(evaluations),
        created=len(created),
    )
    return {
        "campaign_id": campaign.id,
        "campaign_name": campaign.name,
        "alerts_created": len(created),
        "alerts_existing": len(refreshed),
        "alerts": [serialize_alert(a, campaign.name) for a in created + refreshed],
    }


async def run_daily_alert_analysis(
    db: AsyncSession, manager_id: Optional[str] = None
) -> dict[str, Any]:
    """
    Analyze every enabled campaign of an active client.

    Args:
        manager_id: Restrict the run to one manager's clients

    Returns:
        Run summary
    """
    started = time.monotonic()
    query = (
        select(Campaign.id)
        .join(Client, Campaign.client_id == Client.id)
        .where(Campaign.status == "ENABLED", Client.is_active.is_(True))
    )
    if manager_id:
        query = query.where(Client.manager_id == manager_id)
    campaign_ids = list((await db.execute(query)).scalars().all())

    alerts_created = 0
    errors = 0
    for campaign_id in campaign_ids:
        try:
            result = await analyze_campaign(db, campaign_id)
            alerts_created += result["alerts_created"]
        except Exception as e:
            await db.rollback()
            errors += 1
            logger.error("campaign_analysis_failed", campaign_id=campaign_id, error=str(e))

    summary = {
        "campaigns_analyzed": len(campaign_ids),
        "alerts_generated": alerts_created,
        "errors": errors,
        "duration_ms": int((time.monotonic() - started) * 1000),
    }
    logger.info("daily_alert_analysis_completed", **summary)
    return summary


# =============================================================================
# Queries
# =============================================================================

def alert_scope_condition(user: User):
    """Managers see the alerts addressed to them; clients see their campaigns' alerts."""
    if user.is_manager:
        return Alert.user_id == user.id
    visible = (
        select(Campaign.id)
        .join(Client, Campaign.client_id == Client.id)
        .where(campaign_scope_condition(user))
    )
    return Alert.campaign_id.in_(visible)


async def list_alerts(
    db: AsyncSession,
    user: User,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    alert_type: Optional[str] = None,
    campaign_id: Optional[str] = None,
    is_read: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> tuple[list[tuple[Alert, str]], int]:
    """
    List alerts, unread first, then by priority, newest first.

    Returns:
        Tuple of ([(alert, campaign name)], total count)
    """
    conditions = [alert_scope_condition(user)]
    if status:
        conditions.append(Alert.status == status)
    if priority:
        conditions.append(Alert.priority == priority)
    if alert_type:
        conditions.append(Alert.alert_type == alert_type)
    if campaign_id:
        conditions.append(Alert.campaign_id == campaign_id)
    if is_read is not None:
        conditions.append(Alert.is_read.is_(is_read))
    if start_date:
        conditions.append(Alert.created_at >= start_date)
    if end_date:
        conditions.append(Alert.created_at <= end_date)

    total = (
        await db.execute(select(func.count(Alert.id)).where(and_(*conditions)))
    ).scalar() or 0

    priority_rank = case(PRIORITY_RANK, value=Alert.priority, else_=0)
    result = await db.execute(
        select(Alert, Campaign.name)
        .join(Campaign, Alert.campaign_id == Campaign.id)
        .where(and_(*conditions))
        .order_by(Alert.is_read.asc(), priority_rank.desc(), Alert.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()], total


async def get_alert(db: AsyncSession, user: User, alert_id: str) -> Alert:
    result = await db.execute(
        select(Alert).where(Alert.id == alert_id, alert_scope_condition(user))
    )
    alert = result.scalar_one_or_none()
    if not alert:
        raise NotFoundError("Alert not found")
    return alert


async def get_alert_stats(db: AsyncSession, user: User) -> dict[str, Any]:
    scope = alert_scope_condition(user)
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)
    active = and_(scope, Alert.status == AlertStatus.ACTIVE)

    async def count(*conditions) -> int:
        return (await db.execute(select(func.count(Alert.id)).where(*conditions))).scalar() or 0

    by_priority = await db.execute(
        select(Alert.priority, func.count(Alert.id)).where(active).group_by(Alert.priority)
    )
    by_type = await db.execute(
        select(Alert.alert_type, func.count(Alert.id))
        .where(active, Alert.created_at >= week_ago)
        .group_by(Alert.alert_type)
    )
    return {
        "total_active": await count(active),
        "unread": await count(scope, Alert.is_read.is_(False)),
        "last_week": await count(scope, Alert.created_at >= week_ago),
        "by_priority": {priority: total for priority, total in by_priority.all()},
        "by_type": {alert_type: total for alert_type, total in by_type.all()},
    }


# =============================================================================
# Transitions
# =============================================================================

async def mark_as_read(
    db: AsyncSession, user: User, alert_ids: Optional[list[str]] = None
) -> int:
    """
    Mark alerts as read; every unread alert of the user when no ids are given.

    Returns:
        Number of alerts updated
    """
    conditions = [alert_scope_condition(user), Alert.is_read.is_(False)]
    if alert_ids is not None:
        if not alert_ids:
            return 0
        conditions.append(Alert.id.in_(alert_ids))

    result = await db.execute(
        update(Alert)
        .where(*conditions)
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def _set_status(db: AsyncSession, user: User, alert_id: str, status: str) -> Alert:
    alert = await get_alert(db, user, alert_id)
    now = datetime.now(timezone.utc)

    alert.status = status
    if status == AlertStatus.ACKNOWLEDGED:
        alert.is_read = True
        alert.read_at = alert.read_at or now
    elif status in AlertStatus.CLOSED:
        alert.resolved_at = now

    await db.commit()
    await db.refresh(alert)
    logger.info("alert_status_changed", alert_id=alert.id, status=status, user_id=user.id)
    return alert


async def acknowledge_alert(db: AsyncSession, user: User, alert_id: str) -> Alert:
    return await _set_status(db, user, alert_id, AlertStatus.ACKNOWLEDGED)


async def resolve_alert(db: AsyncSession, user: User, alert_id: str) -> Alert:
    return await _set_status(db, user, alert_id, AlertStatus.RESOLVED)


async def dismiss_alert(db: AsyncSession, user: User, alert_id: str) -> Alert:
    return await _set_status(db, user, alert_id, AlertStatus.DISMISSED)


async def delete_alert(db: AsyncSession, user: User, alert_id: str) -> None:
    alert = await get_alert(db, user, alert_id)
    if not alert.is_closed:
        raise AppError("Only resolved or dismissed alerts can be deleted")

    await db.delete(alert)
    await db.commit()
    logger.info("alert_deleted", alert_id=alert_id, user_id=user.id)
