"""
Scheduler - runs the reminder sweeps on APScheduler cron triggers.

Jobs live only in memory; a missed run is not replayed.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import get_settings
from app.services.reminder_jobs import JOBS

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def _run_job(name: str):
    try:
        count = JOBS[name]()
        logger.info(f"Scheduled job {name} finished ({count} items)")
    except Exception:
        logger.exception(f"Scheduled job {name} failed")


def start_scheduler() -> BackgroundScheduler:
    """Create the scheduler, register the daily sweeps and start it."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    settings = get_settings()
    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)
    hours = {
        "fee_due_reminders": settings.fee_reminder_hour,
        "fee_overdue_notifications": settings.overdue_sweep_hour,
        "library_overdue_sweep": settings.library_sweep_hour,
    }
    for name, hour in hours.items():
        scheduler.add_job(
            _run_job,
            CronTrigger(hour=hour, minute=0, timezone=settings.scheduler_timezone),
            args=[name],
            id=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    scheduler.start()
    _scheduler = scheduler
    logger.info(f"Scheduler started with jobs: {', '.join(hours)}")
    return scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None
