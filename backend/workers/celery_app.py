"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "pharmapop",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.retention"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.retention.*": {"queue": "maintenance"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        "prune-expired-sheets-daily": {
            "task": "workers.retention.prune_expired_sheets",
            "schedule": crontab(hour=3, minute=15),
            "options": {"queue": "maintenance"},
        },
    },
)
