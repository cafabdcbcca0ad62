"""
Celery application configuration.

Configures the Celery app with Redis broker, JSON serialization, UTC
timezone, and the beat schedule for the pending-delete sweep and the
tracking outbox drain.
"""

import os
from celery import Celery
from celery.signals import after_setup_logger, after_setup_task_logger
from dotenv import load_dotenv

load_dotenv()


@after_setup_logger.connect
@after_setup_task_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    """Configure Celery worker logging via signal."""
    from repodesk.core.logging_config import setup_logging
    setup_logging()


REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
PENDING_DELETE_SWEEP_SECONDS = float(os.environ.get("PENDING_DELETE_SWEEP_SECONDS", "300"))
OUTBOX_DRAIN_SECONDS = float(os.environ.get("OUTBOX_DRAIN_SECONDS", "60"))

app = Celery(
    "repodesk",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["repodesk.celery_app.tasks"],
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone - use UTC for consistency
    timezone="UTC",
    enable_utc=True,

    # Worker configuration
    worker_prefetch_multiplier=1,  # Fair scheduling
    worker_concurrency=4,
    worker_hijack_root_logger=False,  # Don't hijack root logger

    # Task configuration
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,

    # Result expiration
    result_expires=86400,  # 24h

    task_default_queue="default",
    task_queues={
        "high": {},      # User-triggered work (deletion finalization, resync)
        "default": {},   # Periodic sweeps
    },
    task_routes={
        "finalize_file_deletion": {"queue": "high"},
        "sync_repository_tree": {"queue": "high"},
        "deliver_tracking_notifications": {"queue": "default"},
        "retry_pending_deletes": {"queue": "default"},
    },

    # Celery Beat schedule
    beat_schedule={
        "retry-pending-deletes": {
            "task": "retry_pending_deletes",
            "schedule": PENDING_DELETE_SWEEP_SECONDS,
        },
        "drain-tracking-outbox": {
            "task": "deliver_tracking_notifications",
            "schedule": OUTBOX_DRAIN_SECONDS,
        },
    },
)
