"""Current-repository API router: listing, tree sync and push."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from repodesk.dependencies import (
    get_file_sync_service,
    get_session_repository,
    verify_api_token,
)
from repodesk.schemas.repos import (
    DirectoryEntryResponse,
    FlatTreeResponse,
    PushResponse,
    RepositoryResponse,
    ResyncQueuedResponse,
    TreeSyncResponse,
)
from repodesk.services.sync.file_sync import FileSyncService
from repodesk.services.sync.listing import render_flat_tree
from repodesk.services.sync.push import PushService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sessions/{session_id}/repository",
    tags=["repository"],
    dependencies=[Depends(verify_api_token)],
)


@router.get("", response_model=RepositoryResponse)
def get_repository(repository: dict = Depends(get_session_repository)):
    return repository


@router.get("/entries", response_model=List[DirectoryEntryResponse])
def list_directory(
    parent: str = Query("", description="Directory path, empty for the root"),
    service: FileSyncService = Depends(get_file_sync_service),
):
    """Immediate children of a directory, directories first."""
    return [entry.to_dict() for entry in service.list_entries(parent)]


@router.get("/tree", response_model=FlatTreeResponse)
def list_flat_tree(service: FileSyncService = Depends(get_file_sync_service)):
    paths = service.catalog.list_live_paths()
    return {"paths": paths, "message": render_flat_tree(paths)}


@router.post("/sync", response_model=TreeSyncResponse)
def sync_tree(service: FileSyncService = Depends(get_file_sync_service)):
    """Pull the remote file list into the catalog now."""
    return service.sync_tree().to_dict()


@router.post("/sync/background", response_model=ResyncQueuedResponse, status_code=202)
def queue_sync_tree(session_id: str, repository: dict = Depends(get_session_repository)):
    from repodesk.celery_app.tasks import sync_repository_tree

    result = sync_repository_tree.delay(repository["id"], session_id)
    logger.info(f"Queued tree sync of {repository['url']}", extra={"session_id": session_id})
    return {"task_id": result.id, "message": "Sync scheduled"}


@router.post("/push", response_model=PushResponse)
def push_repository(service: FileSyncService = Depends(get_file_sync_service)):
    """
    Push every locally cached file to the default branch.

    Per-file conflicts and errors are part of the report, not HTTP errors.
    """
    push = PushService(
        service.supabase,
        service.repository,
        service.remote,
        service.github_token,
        store=service.store,
    )
    return push.push().to_dict()
