"""
FastAPI dependencies.

The chat front end is the only client; it authenticates with a shared bearer
token and passes its session id in the URL.
"""

import hmac
import logging
import os
from typing import Iterator, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from dotenv import load_dotenv, find_dotenv
from supabase import Client

from repodesk.services.db.credentials import CredentialService
from repodesk.services.db.repositories import RepositoryService
from repodesk.services.github_client import GitHubClient, RemoteRepository
from repodesk.services.storage import ObjectCacheStore
from repodesk.services.sync.file_sync import DeletionScheduler, FileSyncService
from repodesk.supabase_client import get_service_client

_ = load_dotenv(find_dotenv())  # read local .env file

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def verify_api_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Verify the shared bearer token of the front end."""
    expected = os.environ.get("REPODESK_API_TOKEN")
    if not expected:
        logger.error("REPODESK_API_TOKEN is not set, rejecting request")
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not credentials or not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return True


def get_supabase() -> Client:
    return get_service_client()


def get_remote_repository() -> Iterator[RemoteRepository]:
    with GitHubClient() as client:
        yield client


def get_object_store(supabase: Client = Depends(get_supabase)) -> ObjectCacheStore:
    return ObjectCacheStore(supabase)


def _enqueue_finalization(file_id: int) -> None:
    from repodesk.celery_app.tasks import finalize_file_deletion
    finalize_file_deletion.delay(file_id)


def _enqueue_tracking_delivery() -> None:
    from repodesk.celery_app.tasks import deliver_tracking_notifications
    deliver_tracking_notifications.delay()


def get_deletion_scheduler() -> Optional[DeletionScheduler]:
    return _enqueue_finalization


def get_tracking_trigger():
    return _enqueue_tracking_delivery


def get_session_repository(session_id: str, supabase: Client = Depends(get_supabase)) -> dict:
    """Repository the session works on (raises NotFoundError if none)."""
    return RepositoryService(supabase).get_session_repository(session_id)


def get_file_sync_service(
    session_id: str,
    repository: dict = Depends(get_session_repository),
    supabase: Client = Depends(get_supabase),
    remote: RemoteRepository = Depends(get_remote_repository),
    store: ObjectCacheStore = Depends(get_object_store),
    schedule_deletion: Optional[DeletionScheduler] = Depends(get_deletion_scheduler),
) -> FileSyncService:
    """FileSyncService for the session's repository, with its token if one is stored."""
    return FileSyncService(
        supabase,
        repository,
        remote,
        github_token=CredentialService(supabase, session_id).get_token(),
        store=store,
        schedule_deletion=schedule_deletion,
    )
