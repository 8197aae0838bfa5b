from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "bizrent",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# ─── Scheduled tasks ──────────────────────────
celery_app.conf.beat_schedule = {
    "mark-overdue-invoices-daily": {
        "task": "app.services.overdue.mark_overdue_invoices",
        "schedule": crontab(hour=settings.overdue_sweep_hour, minute=0),
    },
}

# Explicitly include task modules so the worker registers them on startup.
# autodiscover_tasks() only looks for a "tasks.py" file, which we don't use.
celery_app.conf.include = [
    "app.services.overdue",
]
