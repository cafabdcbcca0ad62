"""
File sync Celery tasks.

Design principles:
1. Core logic in do_* functions, decoupled from Celery for unit testing
2. Deferred work (deletion finalization, tracker delivery) is idempotent,
   so a duplicate or replayed task is harmless
3. Periodic beat tasks catch anything an immediate task missed
4. Redis lock only where duplicate work is wasteful (tree sync)
"""

import logging
from typing import Any, Dict, Optional

from celery.exceptions import Reject

from repodesk.exceptions import AppException
from repodesk.services.db.credentials import CredentialService
from repodesk.services.db.repositories import RepositoryService
from repodesk.services.github_client import GitHubClient
from repodesk.services.sync.deletion import finalize_deletion, retry_pending_deletes
from repodesk.services.sync.file_sync import FileSyncService
from repodesk.services.tracking import deliver_pending_notifications
from repodesk.supabase_client import get_service_client
from .celery import app
from .task_lock import get_task_lock
from .task_utils import (
    NonRetryableError,
    NonRetryableSyncError,
    RetryableError,
    build_task_result,
    classify_sync_error,
    task_context,
)

logger = logging.getLogger(__name__)

TREE_SYNC_LOCK_TTL = 660  # longer than the task's hard time limit


# =============================================================================
# Core business logic (decoupled from Celery for unit testing)
# =============================================================================

def do_finalize_file_deletion(file_id: int) -> Dict[str, Any]:
    deleted = finalize_deletion(get_service_client(), file_id)
    return {"file_id": file_id, "deleted": deleted}


def do_retry_pending_deletes(limit: int = 500) -> Dict[str, Any]:
    return retry_pending_deletes(get_service_client(), limit=limit)


def do_deliver_tracking_notifications(limit: int = 50) -> Dict[str, Any]:
    return deliver_pending_notifications(get_service_client(), limit=limit)


def do_sync_repository_tree(
    repository_id: int,
    session_id: str,
    remote: Optional[GitHubClient] = None,
) -> Dict[str, Any]:
    """
    Re-run the tree sync of a repository with the session's token.

    Raises:
        RetryableSyncError: GitHub or storage hiccup
        NonRetryableSyncError: missing/invalid token, unknown repository
    """
    supabase = get_service_client()

    repository = RepositoryService(supabase).get_repository(repository_id)
    if repository is None:
        raise NonRetryableSyncError(f"Repository {repository_id} not found")

    try:
        token = CredentialService(supabase, session_id).require_token()
        if remote is None:
            with GitHubClient() as client:
                result = FileSyncService(supabase, repository, client, token).sync_tree()
        else:
            result = FileSyncService(supabase, repository, remote, token).sync_tree()
    except AppException as e:
        raise classify_sync_error(e) from e

    return {"repository_id": repository_id, **result.to_dict()}


# =============================================================================
# Celery tasks
# =============================================================================

@app.task(
    bind=True,
    name="finalize_file_deletion",
    max_retries=0,  # the pending-delete sweep is the retry
    acks_late=True,
    time_limit=60,
    soft_time_limit=50,
)
def finalize_file_deletion(self, file_id: int):
    """Second phase of a requested deletion."""
    with task_context(self, file_id=file_id) as ctx:
        ctx.log_start(f"Finalizing deletion of file {file_id}")
        result = do_finalize_file_deletion(file_id)
        ctx.log_success(deleted=result["deleted"])
        return build_task_result(ctx, success=result["deleted"], **result)


@app.task(bind=True, name="retry_pending_deletes", time_limit=600, soft_time_limit=540)
def retry_pending_deletes_task(self, limit: int = 500):
    """Celery Beat task: advance every PENDING_DELETE file whose object can be removed."""
    with task_context(self) as ctx:
        result = do_retry_pending_deletes(limit)
        if result["scanned"]:
            ctx.log_success(**result)
        return build_task_result(ctx, success=True, **result)


@app.task(bind=True, name="deliver_tracking_notifications", time_limit=300, soft_time_limit=270)
def deliver_tracking_notifications(self, limit: int = 50):
    """
    Drain the tracking outbox.

    Triggered right after a registration commits, and by Celery Beat for
    anything the immediate trigger missed.
    """
    with task_context(self) as ctx:
        result = do_deliver_tracking_notifications(limit)
        if result["claimed"]:
            ctx.log_success(**result)
        return build_task_result(ctx, success=result["failed"] == 0, **result)


@app.task(
    bind=True,
    name="sync_repository_tree",
    max_retries=3,
    default_retry_delay=30,
    retry_backoff=True,
    retry_backoff_max=300,
    acks_late=True,
    time_limit=600,
    soft_time_limit=540,
)
def sync_repository_tree(self, repository_id: int, session_id: str):
    """Re-sync the catalog of a repository from GitHub."""
    with task_context(self, repository_id=repository_id, session_id=session_id) as ctx:
        task_lock = get_task_lock()
        lock_key = f"tree_sync:{repository_id}"

        with task_lock.lock(lock_key, TREE_SYNC_LOCK_TTL, ctx.task_id) as acquired:
            if not acquired:
                logger.info(
                    f"Skipping tree sync of repository {repository_id}: held by {task_lock.holder(lock_key)}",
                    extra=ctx.log_extra(lock_key=lock_key),
                )
                raise Reject(f"Tree sync for repository {repository_id} is locked", requeue=False)

            ctx.log_start(f"Syncing tree of repository {repository_id}")
            try:
                result = do_sync_repository_tree(repository_id, session_id)
                ctx.log_success(inserted=result["inserted"], restored=result["restored"])
                return build_task_result(ctx, success=True, **result)

            except NonRetryableError as e:
                ctx.log_error(e)
                return build_task_result(ctx, success=False, error=str(e), repository_id=repository_id)

            except RetryableError as e:
                ctx.log_error(e)
                raise self.retry(exc=e)

            except Exception as e:
                ctx.log_exception(e)
                raise self.retry(exc=e)
