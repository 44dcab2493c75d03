import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from contabil.core.config import settings
from contabil.db.session import SessionLocal
from contabil.notifications.reminders import run_reminder_sweep

logger = logging.getLogger("contabil.scheduler")

JOB_ID = "reminder-sweep"

_scheduler: Optional[BackgroundScheduler] = None


def reminder_job() -> None:
    db = SessionLocal()
    try:
        run_reminder_sweep(db)
    except Exception:
        logger.exception("Error running scheduled checks")
    finally:
        db.close()


def start_scheduler() -> Optional[BackgroundScheduler]:
    global _scheduler
    if not settings.REMINDERS_ENABLED:
        logger.info("Reminder scheduler disabled (REMINDERS_ENABLED)")
        return None
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    first_run = datetime.utcnow() + (
        timedelta(seconds=5)
        if settings.REMINDERS_RUN_ON_STARTUP
        else timedelta(hours=settings.REMINDER_INTERVAL_HOURS)
    )
    scheduler.add_job(
        reminder_job,
        "interval",
        hours=settings.REMINDER_INTERVAL_HOURS,
        id=JOB_ID,
        next_run_time=first_run,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info("Reminder scheduler started interval_hours=%s", settings.REMINDER_INTERVAL_HOURS)
    return scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")
    _scheduler = None


def scheduler_running() -> bool:
    return _scheduler is not None and _scheduler.running
