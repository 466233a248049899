"""
arq Worker Settings

Configures background job workers for:
- Metrics sync from Google Ads
- Daily alert analysis and summary emails
"""

import urllib.parse

from arq import cron
from arq.connections import RedisSettings

from app.config import settings
from app.workers.alerts_worker import run_alert_analysis
from app.workers.metrics_sync import sync_all_metrics


def redis_settings_from_url(redis_url: str) -> RedisSettings:
    """Format: redis://:password@host:port/db"""
    url = urllib.parse.urlparse(redis_url)
    return RedisSettings(
        host=url.hostname or "localhost",
        port=url.port or 6379,
        password=url.password,
        database=int(url.path.lstrip("/") or 0),
    )


class WorkerSettings:
    """arq worker settings."""

    functions = [
        sync_all_metrics,
        run_alert_analysis,
    ]

    cron_jobs = [
        # Metrics sync every 6 hours
        cron(sync_all_metrics, hour={0, 6, 12, 18}, minute=0),

        # Alert analysis at 8 AM UTC, after the early sync
        cron(run_alert_analysis, hour=8, minute=0),
    ]

    redis_settings = redis_settings_from_url(settings.redis_url)

    # Job settings
    max_jobs = 10
    job_timeout = 1800  # full sync of a large account
    keep_result = 3600
    max_tries = 3
