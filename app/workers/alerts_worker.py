"""
Alerts Worker

Daily analysis of every enabled campaign, followed by an email summary of
the last day's alerts to each manager.
"""

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select

from app.core.database import get_db_context
from app.models import Alert, User
from app.services import alerts_service, notification_service

logger = structlog.get_logger()


async def send_daily_summaries(db) -> int:
    """Email each active manager the alerts assigned to them in the last 24 hours."""
    if not notification_service.is_email_configured():
        return 0

    since = datetime.now(timezone.utc) - timedelta(hours=24)
    managers = (
        await db.execute(select(User).where(User.role == "manager", User.is_active.is_(True)))
    ).scalars().all()

    sent = 0
    for manager in managers:
        alerts = (
            await db.execute(
                select(Alert)
                .where(Alert.user_id == manager.id, Alert.created_at >= since)
                .order_by(Alert.created_at.desc())
            )
        ).scalars().all()
        if await notification_service.send_daily_summary(manager, list(alerts)):
            sent += 1
    return sent


async def run_alert_analysis(ctx: dict) -> dict:
    """
    Run the alert rules on all enabled campaigns.

    Args:
        ctx: arq context

    Returns:
        Summary dict from the analysis, plus the number of summaries sent
    """
    logger.info("alert_analysis_job_started")

    async with get_db_context() as db:
        summary = await alerts_service.run_daily_alert_analysis(db)
        summary["summaries_sent"] = await send_daily_summaries(db)

    logger.info("alert_analysis_job_completed", **summary)
    return summary
