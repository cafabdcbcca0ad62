"""File API router: read, download, upload, delete and edit links."""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from repodesk.dependencies import get_file_sync_service, verify_api_token
from repodesk.schemas.files import (
    DeletionResponse,
    EditLinkRequest,
    EditLinkResponse,
    FileContentResponse,
    UploadResponse,
)
from repodesk.services.sessions import request_edit_link
from repodesk.services.sync.file_sync import FileSyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sessions/{session_id}/repository/files",
    tags=["files"],
    dependencies=[Depends(verify_api_token)],
)


@router.get("/content", response_model=FileContentResponse)
def read_file_content(
    path: str = Query(..., min_length=1),
    service: FileSyncService = Depends(get_file_sync_service),
):
    """File text (UTF-8, undecodable bytes replaced)."""
    return {"path": path, "content": service.read_file_content(path)}


@router.get("/download")
def download_file(
    path: str = Query(..., min_length=1),
    service: FileSyncService = Depends(get_file_sync_service),
):
    name, data = service.download_file_bytes(path)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(name)}"},
    )


@router.put("", response_model=UploadResponse)
def upload_file(
    path: str = Form(...),
    file: UploadFile = File(...),
    service: FileSyncService = Depends(get_file_sync_service),
):
    """Store file bytes locally; they reach GitHub on the next push."""
    data = file.file.read()
    row = service.upload_file(path, data, file.content_type)
    return {"file": row, "message": f"Saved {row['path']}, push to publish it"}


@router.delete("", response_model=DeletionResponse, status_code=202)
def delete_file(
    path: str = Query(..., min_length=1),
    service: FileSyncService = Depends(get_file_sync_service),
):
    """Request deletion; cleanup of the cached copy happens in the background."""
    row = service.request_deletion(path)
    return {
        "path": row["path"],
        "state": row["state"],
        "message": f"{row['path']} is being deleted",
    }


@router.post("/edit-link", response_model=EditLinkResponse)
def create_edit_link(
    session_id: str,
    body: EditLinkRequest,
    service: FileSyncService = Depends(get_file_sync_service),
):
    return request_edit_link(service.supabase, session_id, service.repository, body.path)
