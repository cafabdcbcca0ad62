"""
Repository database service using Supabase Python SDK.

Handles the `repositories` table and the session -> repository links in
`session_repositories`. Registration itself goes through the
`register_repository` Postgres function so the repository row, the link row
and the tracking outbox row commit (or roll back) together.
"""

import logging
from typing import List, Optional

from supabase import Client

from repodesk.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class RepositoryService:
    """Service for repository database operations."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_repository(self, repository_id: int) -> Optional[dict]:
        response = self.supabase.table("repositories") \
            .select("*") \
            .eq("id", repository_id) \
            .limit(1) \
            .execute()
        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def get_by_url(self, url: str) -> Optional[dict]:
        response = self.supabase.table("repositories") \
            .select("*") \
            .eq("url", url) \
            .limit(1) \
            .execute()
        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def register(self, session_id: str, url: str, owner: str, name: str) -> dict:
        """
        Atomically find-or-create the repository, link it to the session and
        queue one tracking notification.

        Returns:
            Repository dict
        """
        response = self.supabase.rpc("register_repository", {
            "p_session_id": session_id,
            "p_url": url,
            "p_owner": owner,
            "p_name": name,
        }).execute()

        data = response.data
        # A composite return value comes back as an object, SETOF as a list
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise RuntimeError(f"register_repository returned no row for {url}")

        logger.info(
            f"Registered repository {owner}/{name}",
            extra={"session_id": session_id},
        )
        return self._row_to_dict(data)

    # =========================================================================
    # Session links
    # =========================================================================

    def list_session_repositories(self, session_id: str) -> List[dict]:
        """Repositories linked to a session, most recently linked first."""
        links = self.supabase.table("session_repositories") \
            .select("repository_id, added_at") \
            .eq("session_id", session_id) \
            .order("added_at", desc=True) \
            .execute()

        repo_ids = [row["repository_id"] for row in links.data or []]
        if not repo_ids:
            return []

        response = self.supabase.table("repositories") \
            .select("*") \
            .in_("id", repo_ids) \
            .execute()
        by_id = {row["id"]: self._row_to_dict(row) for row in response.data or []}
        return [by_id[repo_id] for repo_id in repo_ids if repo_id in by_id]

    def get_session_repository(self, session_id: str) -> dict:
        """
        The repository the session linked most recently.

        Raises:
            NotFoundError: session has no repository
        """
        repos = self.list_session_repositories(session_id)
        if not repos:
            raise NotFoundError("Repository for this session")
        return repos[0]

    def _row_to_dict(self, row: dict) -> dict:
        return {
            "id": row["id"],
            "url": row["url"],
            "owner": row["owner"],
            "name": row["name"],
            "created_at": row.get("created_at"),
        }
