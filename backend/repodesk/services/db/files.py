"""
File catalog database service.

One row per (repository, path) in the `files` table. The row's state is the
durable lifecycle of the file:

    added -> pending_delete -> deleted

`deleted` is terminal. Rows are only ever moved to `deleted` by a conditional
update that still sees `pending_delete`, so concurrent sweeps never regress a
row.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional

from supabase import Client

from .base import BaseDbService, fetch_all_pages, utc_now

logger = logging.getLogger(__name__)

# Rows per insert/update request during tree sync
BATCH_SIZE = 200


class FileState(str, Enum):
    ADDED = "added"
    PENDING_DELETE = "pending_delete"
    DELETED = "deleted"


def _chunks(items: List, size: int = BATCH_SIZE):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class FileCatalogService(BaseDbService):
    """Catalog rows of one repository."""

    table_name = "files"
    scope_field = "repository_id"

    def __init__(self, supabase: Client, repository_id: int):
        super().__init__(supabase, repository_id)
        self.repository_id = repository_id

    # =========================================================================
    # Reads
    # =========================================================================

    def get_file(self, path: str) -> Optional[dict]:
        """Row for path in any state."""
        return self._get_one({"path": path})

    def get_live_file(self, path: str) -> Optional[dict]:
        """Row for path if it is in ADDED state."""
        row = self.get_file(path)
        if row and row["state"] == FileState.ADDED.value:
            return row
        return None

    def get_state_map(self) -> Dict[str, str]:
        """path -> state for every row of the repository."""
        rows = fetch_all_pages(lambda: self._query("id, path, state").order("id"))
        return {row["path"]: row["state"] for row in rows}

    def list_live_paths(self) -> List[str]:
        rows = fetch_all_pages(
            lambda: self._query("path").eq("state", FileState.ADDED.value).order("path")
        )
        return [row["path"] for row in rows]

    def list_cached_files(self) -> List[dict]:
        """ADDED rows that have a cache key, ordered by path."""
        rows = fetch_all_pages(
            lambda: (
                self._query()
                .eq("state", FileState.ADDED.value)
                .not_.is_("storage_key", "null")
                .order("path")
            )
        )
        return [self._row_to_dict(row) for row in rows]

    # =========================================================================
    # Tree sync
    # =========================================================================

    def insert_known_paths(self, paths: Iterable[str]) -> int:
        """
        Insert uncached ADDED rows for paths first seen remotely.

        Paths that already have a row are left untouched, so a sync that
        overlaps another sync or an upload does not fail on the unique key.
        """
        now = utc_now()
        rows = [
            {
                "repository_id": self.repository_id,
                "path": path,
                "storage_key": None,
                "state": FileState.ADDED.value,
                "created_at": now,
                "updated_at": now,
            }
            for path in paths
        ]
        inserted = 0
        for batch in _chunks(rows):
            response = (
                self._table()
                .upsert(batch, on_conflict="repository_id,path", ignore_duplicates=True)
                .execute()
            )
            inserted += len(response.data or [])
        return inserted

    def refresh_live_paths(self, paths: Iterable[str]) -> int:
        """Bump updated_at of ADDED rows still present remotely."""
        paths = list(paths)
        for batch in _chunks(paths):
            (
                self._table()
                .update({"updated_at": utc_now()})
                .eq(self.scope_field, self.repository_id)
                .eq("state", FileState.ADDED.value)
                .in_("path", batch)
                .execute()
            )
        return len(paths)

    def restore_pending_paths(self, paths: Iterable[str]) -> int:
        """
        PENDING_DELETE -> ADDED for paths the remote still has.

        The cache key stays; a finalizer that already removed the object
        leaves a stale key, which reads treat as a cache miss.
        """
        restored = 0
        for batch in _chunks(list(paths)):
            response = (
                self._table()
                .update({"state": FileState.ADDED.value, "updated_at": utc_now()})
                .eq(self.scope_field, self.repository_id)
                .eq("state", FileState.PENDING_DELETE.value)
                .in_("path", batch)
                .execute()
            )
            restored += len(response.data or [])
        return restored

    def replace_tombstones(self, paths: Iterable[str]) -> int:
        """Swap DELETED rows for fresh uncached ADDED rows."""
        paths = list(paths)
        for batch in _chunks(paths):
            (
                self._table()
                .delete()
                .eq(self.scope_field, self.repository_id)
                .eq("state", FileState.DELETED.value)
                .in_("path", batch)
                .execute()
            )
        return self.insert_known_paths(paths)

    # =========================================================================
    # Writes
    # =========================================================================

    def save_uploaded(self, path: str, storage_key: str) -> dict:
        """
        Record freshly cached content for path as ADDED.

        A DELETED row is a tombstone: it is replaced by a new row rather than
        moved out of its terminal state.
        """
        existing = self.get_file(path)

        if existing and existing["state"] == FileState.DELETED.value:
            self._delete_one(existing["id"])
            existing = None

        if existing:
            row = self._update_one(
                existing["id"],
                {"storage_key": storage_key, "state": FileState.ADDED.value},
            )
            if row is None:
                raise RuntimeError(f"File row {existing['id']} vanished during upload")
            return row

        now = utc_now()
        response = self._table().insert({
            "repository_id": self.repository_id,
            "path": path,
            "storage_key": storage_key,
            "state": FileState.ADDED.value,
            "created_at": now,
            "updated_at": now,
        }).execute()
        return self._row_to_dict(response.data[0])

    def set_storage_key(self, file_id: int, storage_key: str) -> Optional[dict]:
        """Attach a cache key to a row that is still ADDED."""
        return self._update_one(
            file_id,
            {"storage_key": storage_key},
            expected={"state": FileState.ADDED.value},
        )

    def mark_pending_delete(self, file_id: int) -> Optional[dict]:
        return self._update_one(
            file_id,
            {"state": FileState.PENDING_DELETE.value},
            expected={"state": FileState.ADDED.value},
        )

    # =========================================================================
    # Deletion finalization (used by Celery tasks without a repository scope)
    # =========================================================================

    @classmethod
    def get_by_id(cls, supabase: Client, file_id: int) -> Optional[dict]:
        response = supabase.table(cls.table_name).select("*").eq("id", file_id).limit(1).execute()
        if response.data:
            return response.data[0]
        return None

    @classmethod
    def list_pending_deletes(cls, supabase: Client, limit: int = 500) -> List[dict]:
        response = (
            supabase.table(cls.table_name)
            .select("*")
            .eq("state", FileState.PENDING_DELETE.value)
            .order("updated_at")
            .limit(limit)
            .execute()
        )
        return response.data or []

    @classmethod
    def mark_deleted(cls, supabase: Client, file_id: int) -> bool:
        """
        PENDING_DELETE -> DELETED.

        Returns:
            False when the row was no longer PENDING_DELETE (already finalized
            by another worker, or re-uploaded meanwhile)
        """
        response = (
            supabase.table(cls.table_name)
            .update({"state": FileState.DELETED.value, "updated_at": utc_now()})
            .eq("id", file_id)
            .eq("state", FileState.PENDING_DELETE.value)
            .execute()
        )
        return bool(response.data)
