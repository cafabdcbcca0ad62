"""Session API router: GitHub token and repository registration."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from supabase import Client

from repodesk.dependencies import (
    get_remote_repository,
    get_supabase,
    get_tracking_trigger,
    verify_api_token,
)
from repodesk.schemas.files import TokenRequest, TokenStatusResponse
from repodesk.schemas.repos import (
    RegisterRepositoryRequest,
    RegisterRepositoryResponse,
    RepositoryResponse,
)
from repodesk.services.db.credentials import CredentialService
from repodesk.services.db.repositories import RepositoryService
from repodesk.services.github_client import RemoteRepository
from repodesk.services.registration import RegistrationService
from repodesk.services.sessions import save_credential

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sessions/{session_id}",
    tags=["sessions"],
    dependencies=[Depends(verify_api_token)],
)


@router.put("/token", response_model=dict)
def put_token(
    session_id: str,
    body: TokenRequest,
    supabase: Client = Depends(get_supabase),
    remote: RemoteRepository = Depends(get_remote_repository),
):
    """Validate and store the session's GitHub token."""
    save_credential(supabase, remote, session_id, body.token)
    return {"success": True, "message": "GitHub token saved"}


@router.get("/token", response_model=TokenStatusResponse)
def get_token_status(session_id: str, supabase: Client = Depends(get_supabase)):
    return {"configured": CredentialService(supabase, session_id).has_token()}


@router.get("/repositories", response_model=List[RepositoryResponse])
def list_repositories(session_id: str, supabase: Client = Depends(get_supabase)):
    """Repositories of the session, most recently added first."""
    return RepositoryService(supabase).list_session_repositories(session_id)


@router.post("/repositories", response_model=RegisterRepositoryResponse, status_code=201)
def register_repository(
    session_id: str,
    body: RegisterRepositoryRequest,
    supabase: Client = Depends(get_supabase),
    remote: RemoteRepository = Depends(get_remote_repository),
    on_committed=Depends(get_tracking_trigger),
):
    """
    Register a repository for the session.

    The file list is synced right away when a token is stored; the tracker
    is notified once the registration has committed.
    """
    token = CredentialService(supabase, session_id).get_token()
    service = RegistrationService(supabase, remote, on_committed=on_committed)
    return service.register(session_id, body.url, github_token=token)
