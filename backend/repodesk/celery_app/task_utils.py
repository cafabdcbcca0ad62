"""
Shared pieces of the Celery tasks.

- Retryable / NonRetryable error split, and the mapping of application
  errors raised during a tree sync onto it
- TaskContext: task id, attempt and timing carried into every log line
- build_task_result: the dict every task returns
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

from repodesk.exceptions import AppException, RateLimitError, RemoteError, StorageUnavailableError

logger = logging.getLogger(__name__)


# =============================================================================
# Error hierarchy
# =============================================================================

class TaskError(Exception):
    """Base of every error a task decides on."""


class RetryableError(TaskError):
    """Transient: GitHub 5xx or timeout, rate limit, storage outage."""


class NonRetryableError(TaskError):
    """Retrying cannot help: missing or rejected token, unknown repository."""


class TreeSyncError(TaskError):
    pass


class RetryableSyncError(TreeSyncError, RetryableError):
    pass


class NonRetryableSyncError(TreeSyncError, NonRetryableError):
    pass


# Application errors worth another attempt
TRANSIENT_ERRORS = (RateLimitError, RemoteError, StorageUnavailableError)


def is_retryable(error: Exception) -> bool:
    return isinstance(error, RetryableError)


def classify_sync_error(error: AppException) -> TreeSyncError:
    """Wrap an application error raised during a tree sync."""
    if isinstance(error, TRANSIENT_ERRORS):
        return RetryableSyncError(error.message)
    return NonRetryableSyncError(error.message)


def calculate_duration_ms(start_time: datetime) -> int:
    return int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)


# =============================================================================
# Task context
# =============================================================================

@dataclass
class TaskContext:
    """
    Identity and timing of one task run.

    Usage:
        with task_context(self, file_id=file_id) as ctx:
            ctx.log_start(f"Finalizing deletion of file {file_id}")
            result = do_finalize_file_deletion(file_id)
            ctx.log_success(deleted=result["deleted"])
            return build_task_result(ctx, success=True, **result)
    """
    task_id: str
    task_name: str
    attempt: int
    max_attempts: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_celery_task(cls, task, **extra) -> "TaskContext":
        request = task.request
        return cls(
            task_id=request.id or "unknown",
            task_name=task.name or "unknown",
            attempt=(request.retries or 0) + 1,
            max_attempts=(task.max_retries or 0) + 1,
            extra=extra,
        )

    @property
    def duration_ms(self) -> int:
        return calculate_duration_ms(self.started_at)

    def log_extra(self, **kwargs) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "attempt": self.attempt,
            **self.extra,
            **kwargs,
        }

    def log_start(self, message: Optional[str] = None) -> None:
        logger.info(
            f"{message or self.task_name} (attempt {self.attempt}/{self.max_attempts})",
            extra=self.log_extra(),
        )

    def log_success(self, message: Optional[str] = None, **kwargs) -> None:
        logger.info(
            message or f"{self.task_name} done in {self.duration_ms}ms",
            extra=self.log_extra(duration_ms=self.duration_ms, **kwargs),
        )

    def log_error(self, error: Exception, **kwargs) -> None:
        """Retryable errors at WARNING, the rest at ERROR."""
        retryable = is_retryable(error)
        logger.log(
            logging.WARNING if retryable else logging.ERROR,
            f"{self.task_name} failed: {error}",
            extra=self.log_extra(
                error=str(error),
                retryable=retryable,
                duration_ms=self.duration_ms,
                **kwargs,
            ),
        )

    def log_exception(self, error: Exception, **kwargs) -> None:
        logger.exception(
            f"Unexpected error in {self.task_name}: {error}",
            extra=self.log_extra(error=str(error), duration_ms=self.duration_ms, **kwargs),
        )


@contextmanager
def task_context(task, **extra) -> Generator[TaskContext, None, None]:
    yield TaskContext.from_celery_task(task, **extra)


def build_task_result(ctx: TaskContext, success: bool, error: Optional[str] = None, **kwargs) -> Dict[str, Any]:
    result = {"success": success, "duration_ms": ctx.duration_ms, **kwargs}
    if error:
        result["error"] = error
    return result
