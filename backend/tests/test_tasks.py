from contextlib import nullcontext

import pytest
from celery.exceptions import Reject

from conftest import TOKEN
from repodesk.celery_app import tasks
from repodesk.celery_app.task_lock import TaskLock
from repodesk.celery_app.task_utils import (
    NonRetryableSyncError,
    RetryableSyncError,
    classify_sync_error,
    is_retryable,
)
from repodesk.exceptions import (
    CredentialInvalidError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    StorageUnavailableError,
)
from repodesk.services.db.credentials import CredentialService
from repodesk.services.sync.file_sync import FileSyncService

SESSION = "chat-1"


class FakeRedis:
    def __init__(self):
        self.values = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    def get(self, key):
        return self.values.get(key)

    def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0


@pytest.fixture(autouse=True)
def service_client(monkeypatch, supabase):
    monkeypatch.setattr(tasks, "get_service_client", lambda: supabase)


@pytest.fixture
def task_lock(monkeypatch):
    lock = TaskLock(client=FakeRedis())
    monkeypatch.setattr(tasks, "get_task_lock", lambda: lock)
    return lock


def pending_file(supabase, repository, github):
    service = FileSyncService(supabase, repository, github, TOKEN, schedule_deletion=lambda file_id: None)
    row = service.upload_file("a.txt", b"x")
    service.request_deletion("a.txt")
    return row["id"]


# =============================================================================
# Core functions
# =============================================================================

def test_do_finalize_file_deletion(supabase, repository, github):
    file_id = pending_file(supabase, repository, github)

    assert tasks.do_finalize_file_deletion(file_id) == {"file_id": file_id, "deleted": True}
    assert tasks.do_finalize_file_deletion(file_id) == {"file_id": file_id, "deleted": False}


def test_do_retry_pending_deletes(supabase, repository, github):
    pending_file(supabase, repository, github)

    assert tasks.do_retry_pending_deletes() == {"scanned": 1, "finalized": 1, "remaining": 0}


def test_do_deliver_tracking_notifications_without_tracker(supabase, monkeypatch):
    supabase.run_rpc("register_repository", {
        "p_session_id": SESSION, "p_url": "https://github.com/octo/demo",
        "p_owner": "octo", "p_name": "demo",
    })
    monkeypatch.setattr("repodesk.services.tracking.TRACKER_URL", "")

    result = tasks.do_deliver_tracking_notifications()

    assert result == {"claimed": 1, "delivered": 0, "failed": 1}
    assert supabase.rows("tracking_outbox")[0]["status"] == "failed"


def test_do_sync_repository_tree(supabase, repository, github):
    CredentialService(supabase, SESSION).save_token(TOKEN)

    result = tasks.do_sync_repository_tree(repository["id"], SESSION, remote=github)

    assert result["repository_id"] == repository["id"]
    assert result["inserted"] == 3


def test_do_sync_repository_tree_classifies_errors(supabase, repository, github):
    with pytest.raises(NonRetryableSyncError):
        tasks.do_sync_repository_tree(9999, SESSION, remote=github)
    with pytest.raises(NonRetryableSyncError):
        tasks.do_sync_repository_tree(repository["id"], SESSION, remote=github)

    CredentialService(supabase, SESSION).save_token(TOKEN)
    github.fail_branch = RemoteError("GitHub API", "status 502")
    with pytest.raises(RetryableSyncError):
        tasks.do_sync_repository_tree(repository["id"], SESSION, remote=github)


@pytest.mark.parametrize("error,retryable", [
    (RateLimitError(), True),
    (RemoteError("GitHub API", "timeout"), True),
    (StorageUnavailableError("put"), True),
    (CredentialInvalidError(), False),
    (NotFoundError("Repository"), False),
])
def test_classify_sync_error(error, retryable):
    assert is_retryable(classify_sync_error(error)) is retryable


# =============================================================================
# Celery tasks (called directly, no broker)
# =============================================================================

def test_finalize_task_result(supabase, repository, github):
    file_id = pending_file(supabase, repository, github)

    result = tasks.finalize_file_deletion.run(file_id)

    assert result["success"] is True
    assert result["deleted"] is True
    assert "duration_ms" in result


def test_sync_task_runs_and_releases_lock(supabase, repository, github, task_lock, monkeypatch):
    CredentialService(supabase, SESSION).save_token(TOKEN)
    monkeypatch.setattr(tasks, "GitHubClient", lambda: nullcontext(github))

    result = tasks.sync_repository_tree.run(repository["id"], SESSION)

    assert result["success"] is True
    assert result["inserted"] == 3
    assert task_lock.redis.values == {}


def test_sync_task_rejects_when_locked(repository, task_lock):
    task_lock.acquire(f"tree_sync:{repository['id']}", 60, "other-task")

    with pytest.raises(Reject):
        tasks.sync_repository_tree.run(repository["id"], SESSION)


def test_sync_task_non_retryable_returns_failure(repository, task_lock):
    result = tasks.sync_repository_tree.run(repository["id"], SESSION)

    assert result["success"] is False
    assert "token" in result["error"]
    assert task_lock.redis.values == {}


def test_task_lock_only_holder_releases():
    lock = TaskLock(client=FakeRedis())

    assert lock.acquire("k", 30, "t1")
    assert not lock.acquire("k", 30, "t2")
    assert lock.holder("k") == "t1"
    assert not lock.release("k", "t2")
    assert lock.release("k", "t1")
    assert lock.holder("k") is None

    with lock.lock("k", 30, "t3") as acquired:
        assert acquired
    assert lock.redis.values == {}
