"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from hundi.config import settings
from hundi.logging_config import configure_logging

celery_app = Celery(
    "hundi",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "hundi.workers.reconciliation",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.collection_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # full roster sweeps
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


@setup_logging.connect
def _use_hundi_logging(**kwargs):
    configure_logging()


# Beat schedule for periodic tasks (collection timezone)
celery_app.conf.beat_schedule = {
    # Re-open donors who missed their collection date
    "daily-overdue-reconciliation": {
        "task": "hundi.workers.reconciliation.reconcile_overdue_donors",
        "schedule": crontab(hour=settings.reconcile_hour, minute=settings.reconcile_minute),
    },
    # Placeholder records at the start of every cycle
    "monthly-cycle-initialization": {
        "task": "hundi.workers.reconciliation.initialize_cycle_records",
        "schedule": crontab(hour=0, minute=5, day_of_month=1),
    },
}
