"""
Celery Application Configuration

Runs matching in the background after a mission is created:
- Redis as message broker and result backend
- A dedicated "matching" queue consumed by a fixed-size worker pool
- Late acknowledgement so a crashed run is redelivered (runs are idempotent)
- Per-task time limits so a stuck run cannot hold a worker slot

Usage:
    # Start worker:
    celery -A nurselink.celery worker -Q matching --loglevel=info

    # Enqueue a run:
    from nurselink.tasks.matching import trigger_matching
    trigger_matching("mission-123")
"""

from celery import Celery
from celery.signals import after_setup_logger

from nurselink.config import get_settings

settings = get_settings()

celery_app = Celery(
    "nurselink_matching",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings: bounded pool, one reserved task per process
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.matching_worker_concurrency,

    # Result settings
    result_expires=3600,
    task_track_started=True,

    # Retry settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Time limits (soft limit raises inside the task, hard limit kills it)
    task_soft_time_limit=settings.matching_task_time_limit_seconds,
    task_time_limit=settings.matching_task_time_limit_seconds + 30,

    task_routes={
        "nurselink.tasks.matching.run_matching": {"queue": "matching"},
    },

    task_default_queue="default",

    # Keep enqueue from stalling the request path when the broker is down
    task_publish_retry=True,
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.5,
    },
)

celery_app.autodiscover_tasks(["nurselink.tasks"])


@after_setup_logger.connect
def _configure_worker_logging(logger, *args, **kwargs):
    logger.setLevel(settings.log_level.upper())
