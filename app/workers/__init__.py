# Background workers module

from app.workers.metrics_sync import sync_all_metrics
from app.workers.alerts_worker import run_alert_analysis, send_daily_summaries
from app.workers.settings import WorkerSettings

__all__ = [
    "WorkerSettings",
    "sync_all_metrics",
    "run_alert_analysis",
    "send_daily_summaries",
]
