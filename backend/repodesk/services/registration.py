"""
Repository registration.

One database transaction (the register_repository function) creates the
repository row, the session link and the tracking outbox row. Only after
that call returns is anything else done: a best-effort tree sync and a
nudge to the outbox drain. The outbox row itself is the guarantee that the
tracker hears about every committed registration and never about a
rolled-back one.
"""

import logging
from typing import Any, Callable, Optional

from supabase import Client

from repodesk.exceptions import AppException
from repodesk.services.db.repositories import RepositoryService
from repodesk.services.github_client import RemoteRepository, parse_repository_url
from repodesk.services.sync.file_sync import FileSyncService

logger = logging.getLogger(__name__)


def canonical_repository_url(owner: str, name: str) -> str:
    return f"https://github.com/{owner}/{name}"


class RegistrationService:
    """Registers repositories for a session."""

    def __init__(
        self,
        supabase: Client,
        remote: RemoteRepository,
        on_committed: Optional[Callable[[], Any]] = None,
    ):
        self.supabase = supabase
        self.remote = remote
        self.on_committed = on_committed
        self._repos = RepositoryService(supabase)

    def register(self, session_id: str, url: str, github_token: Optional[str] = None) -> dict:
        """
        Register url for session_id.

        Raises:
            ValidationError: url is not a GitHub repository URL (nothing written)

        Returns:
            dict with repository, sync (or None) and a human-readable message
        """
        owner, name = parse_repository_url(url)
        repository = self._repos.register(
            session_id, canonical_repository_url(owner, name), owner, name
        )

        # Committed from here on; nothing below may undo or fail the registration
        sync = self._sync_best_effort(repository, github_token, session_id)
        self._notify_committed(session_id)

        message = f"Repository {owner}/{name} added"
        if sync is not None:
            message += f", {sync['remote_files']} files indexed"
        else:
            message += ", file list not synced yet"

        return {"repository": repository, "sync": sync, "message": message}

    def _sync_best_effort(
        self, repository: dict, github_token: Optional[str], session_id: str
    ) -> Optional[dict]:
        if not github_token:
            logger.info(
                f"No token, skipping tree sync of {repository['url']}",
                extra={"session_id": session_id},
            )
            return None
        try:
            service = FileSyncService(self.supabase, repository, self.remote, github_token)
            return service.sync_tree().to_dict()
        except AppException as e:
            logger.warning(
                f"Tree sync of {repository['url']} failed during registration",
                extra={"session_id": session_id, "error": e.message},
            )
            return None
        except Exception as e:
            logger.exception(
                f"Unexpected error syncing {repository['url']} during registration",
                extra={"session_id": session_id, "error": str(e)},
            )
            return None

    def _notify_committed(self, session_id: str) -> None:
        if self.on_committed is None:
            return
        try:
            self.on_committed()
        except Exception as e:
            # The outbox row stays pending and the periodic drain delivers it
            logger.warning(
                "Could not trigger tracking delivery",
                extra={"session_id": session_id, "error": str(e)},
            )
