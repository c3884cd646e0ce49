"""Celery app and tasks for scheduled database backups."""

import logging
import uuid
from typing import Optional

from celery import Celery
from celery.schedules import crontab

from teamchat.core.config import settings

logger = logging.getLogger(__name__)

BACKUP_LOCK_KEY = "lock:scheduled-backup"
BACKUP_LOCK_TTL_SECONDS = 60 * 60

celery_app = Celery(
    "teamchat",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_soft_time_limit=600,  # 10 min soft limit
    task_time_limit=900,  # 15 min hard limit
)


def crontab_from_expression(expression: str) -> crontab:
    """Build a celery ``crontab`` from a five-field cron expression."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


if settings.BACKUP_SCHEDULE_ENABLED:
    celery_app.conf.beat_schedule = {
        "scheduled-database-backup": {
            "task": "run_scheduled_backup",
            "schedule": crontab_from_expression(settings.BACKUP_SCHEDULE),
        },
    }


@celery_app.task(bind=True, name="run_scheduled_backup")
def run_scheduled_backup(self, method: Optional[str] = None, max_retries: Optional[int] = None) -> dict:
    """Run a backup with retries unless another run holds the lock."""
    from teamchat.services.backup_service import backup_service
    from teamchat.services.cache_service import cache_service

    owner = self.request.id or str(uuid.uuid4())
    if not cache_service.acquire_lock(BACKUP_LOCK_KEY, owner, BACKUP_LOCK_TTL_SECONDS):
        logger.warning("Scheduled backup skipped: another run is in progress")
        return {"success": False, "skipped": True, "message": "Backup already running"}

    try:
        outcome = backup_service.perform_backup_with_retry(
            method or settings.BACKUP_METHOD,
            max_retries or settings.BACKUP_MAX_RETRIES,
        )
        return outcome.to_dict()
    finally:
        cache_service.release_lock(BACKUP_LOCK_KEY, owner)
