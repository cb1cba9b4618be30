from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "enrollments",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],  # Auto-discover tasks from this module
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max for any task
    task_soft_time_limit=540,  # Warning at 9 minutes
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "reconcile-stale-orders": {
        "task": "reconcile_stale_orders",
        "schedule": crontab(minute="*/15"),
        "args": [],
    },
}
