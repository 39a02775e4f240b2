"""
Celery application configuration for background task processing.
"""

from celery import Celery
from celery.schedules import crontab
from fieldshare.config import settings

# Create Celery app
celery_app = Celery(
    "fieldshare",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["fieldshare.tasks"],  # Include task modules
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_track_started=True,
    task_time_limit=1800,  # full adjacency rebuilds walk every field
    task_soft_time_limit=1740,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,

    # Retry settings
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies

    # Beat scheduler
    beat_schedule={
        # Rebuild every adjacency edge nightly at 3 AM UTC
        "rebuild-adjacency-nightly": {
            "task": "fieldshare.tasks.rebuild_all_adjacency",
            "schedule": crontab(hour=3, minute=0),
            "options": {"queue": "adjacency"},
        },
    },
)

# Task routing for different queues
celery_app.conf.task_routes = {
    "fieldshare.tasks.recompute_adjacency_task": {"queue": "adjacency"},
    "fieldshare.tasks.rebuild_all_adjacency": {"queue": "adjacency"},
    "fieldshare.tasks.send_access_requested_notification": {"queue": "notifications"},
    "fieldshare.tasks.send_access_decided_notification": {"queue": "notifications"},
}
