"""Editor links handed out for a single file."""

import logging
from datetime import datetime, timedelta, timezone

from supabase import Client

from .base import BaseDbService

logger = logging.getLogger(__name__)


class EditorSessionService(BaseDbService):
    table_name = "editor_sessions"
    scope_field = "session_id"

    def __init__(self, supabase: Client, session_id: str):
        super().__init__(supabase, session_id)
        self.session_id = session_id

    def create(self, file_id: int, session_url: str, ttl: timedelta) -> dict:
        now = datetime.now(timezone.utc)
        response = self._table().insert({
            "file_id": file_id,
            "session_id": self.session_id,
            "session_url": session_url,
            "created_at": now.isoformat(),
            "expires_at": (now + ttl).isoformat(),
        }).execute()
        return self._row_to_dict(response.data[0])

    def _row_to_dict(self, row: dict) -> dict:
        return {
            "id": row["id"],
            "file_id": row["file_id"],
            "url": row["session_url"],
            "expires_at": row["expires_at"],
        }
