"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

With SCHEDULER_MODE=celery the daily reset runs from Celery beat instead of
the API process:

    celery -A app.celery_worker worker --loglevel=info
    celery -A app.celery_worker beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from app.core.config import SchedulerMode, get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'restaurant_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone=settings.reset_timezone,  # None: local time, like the embedded scheduler
    enable_utc=settings.reset_timezone is not None,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=1,  # A single reset at a time

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,
)

if settings.scheduler_mode == SchedulerMode.CELERY:
    celery_app.conf.beat_schedule = {
        'daily-order-reset': {
            'task': 'app.tasks.reset_daily_orders',
            'schedule': crontab(hour=settings.reset_at.hour, minute=settings.reset_at.minute),
        },
    }


if __name__ == '__main__':
    celery_app.start()
