"""
Health check endpoints.

Reports Redis/queue state for the Celery side and the tracking outbox
backlog for the notifier.
"""

import os
from datetime import datetime, timezone

import redis
from fastapi import APIRouter, Depends
from supabase import Client

from repodesk.dependencies import get_supabase
from repodesk.services.db.outbox import OutboxStatus, TrackingOutboxService

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "repodesk"}


@router.get("/queue-health")
def queue_health():
    """
    Queue health check.

    Doesn't use inspect broadcast, directly checks Redis.
    """
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    r = redis.from_url(redis_url, decode_responses=True)

    try:
        r.ping()
        redis_ok = True
    except redis.RedisError:
        redis_ok = False

    queues = {"default": 0, "high": 0}
    if redis_ok:
        queues = {name: r.llen(name) or 0 for name in queues}

    total_pending = sum(queues.values())
    is_healthy = redis_ok and total_pending < 1000

    return {
        "status": "healthy" if is_healthy else "degraded",
        "redis_connected": redis_ok,
        "queues": queues,
        "total_pending": total_pending,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/outbox-health")
def outbox_health(supabase: Client = Depends(get_supabase)):
    """Pending and failed tracking notifications."""
    outbox = TrackingOutboxService(supabase)
    pending = outbox.count_by_status(OutboxStatus.PENDING)
    failed = outbox.count_by_status(OutboxStatus.FAILED)
    return {
        "status": "healthy" if pending < 100 else "degraded",
        "pending": pending,
        "failed": failed,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
