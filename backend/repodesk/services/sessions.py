"""
Session-level operations: storing a GitHub token and handing out editor links.
"""

import logging
import os
import secrets
from datetime import timedelta

from dotenv import load_dotenv
from supabase import Client

from repodesk.exceptions import CredentialInvalidError, NotFoundError
from repodesk.services.db.credentials import CredentialService
from repodesk.services.db.editor_sessions import EditorSessionService
from repodesk.services.db.files import FileCatalogService
from repodesk.services.github_client import RemoteRepository
from repodesk.services.sync.paths import normalize_path

load_dotenv()

logger = logging.getLogger(__name__)

EDITOR_BASE_URL = os.environ.get("EDITOR_BASE_URL", "https://editor.local/session")
EDIT_LINK_TTL = timedelta(hours=1)


def save_credential(supabase: Client, remote: RemoteRepository, session_id: str, token: str) -> None:
    """
    Validate token against GitHub, then store it encrypted.

    Raises:
        CredentialInvalidError: GitHub rejected the token
    """
    token = token.strip()
    if not token or not remote.validate_token(token):
        logger.info("Rejected GitHub token", extra={"session_id": session_id})
        raise CredentialInvalidError("GitHub")
    CredentialService(supabase, session_id).save_token(token)


def request_edit_link(supabase: Client, session_id: str, repository: dict, path: str) -> dict:
    """
    Create a one-hour editor link for a live file of the repository.

    Raises:
        NotFoundError: path is not a live file
    """
    path = normalize_path(path)
    row = FileCatalogService(supabase, repository["id"]).get_live_file(path)
    if row is None:
        raise NotFoundError(f"File {path}")

    url = f"{EDITOR_BASE_URL.rstrip('/')}/{secrets.token_urlsafe(24)}"
    link = EditorSessionService(supabase, session_id).create(row["id"], url, EDIT_LINK_TTL)

    logger.info(f"Edit link issued for {path}", extra={"session_id": session_id})
    return {"path": path, **link}
