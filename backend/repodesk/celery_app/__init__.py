"""
Celery application module.

The API process imports this to enqueue deletion finalization, tree syncs and
outbox drains; workers and beat load the same app.
"""

from .celery import app as celery_app

__all__ = ["celery_app"]
