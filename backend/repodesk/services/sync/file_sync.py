"""
File sync service.

Keeps the file catalog, the object cache and the GitHub repository
consistent for one registered repository:

- sync_tree: pull the remote tree into the catalog (never prunes)
- list_entries / list_flat_tree: catalog-only directory views
- read_file: cache first, remote fallback that re-populates the cache
- upload_file: cache write, then catalog write, compensated on failure
- request_deletion: durable PENDING_DELETE, physical cleanup deferred
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from supabase import Client

from repodesk.exceptions import (
    CredentialMissingError,
    NotFoundError,
    ObjectNotFoundError,
    StorageUnavailableError,
)
from repodesk.services.db.files import FileCatalogService, FileState
from repodesk.services.github_client import RemoteRepository
from repodesk.services.storage import ObjectCacheStore, storage_key
from .deletion import finalize_deletion
from .listing import DirectoryEntry, list_entries, render_flat_tree
from .paths import file_name, normalize_path
from .saga import Saga

logger = logging.getLogger(__name__)

# Called with a file id once the PENDING_DELETE intent is durable
DeletionScheduler = Callable[[int], Any]


@dataclass
class TreeSyncResult:
    branch: str
    remote_files: int
    inserted: int
    refreshed: int
    restored: int

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "remote_files": self.remote_files,
            "inserted": self.inserted,
            "refreshed": self.refreshed,
            "restored": self.restored,
        }


class FileSyncService:
    """
    Sync engine bound to one repository.

    The GitHub token is optional: catalog-only operations work without it,
    and any operation that has to reach GitHub raises CredentialMissingError.
    """

    def __init__(
        self,
        supabase: Client,
        repository: dict,
        remote: RemoteRepository,
        github_token: Optional[str] = None,
        store: Optional[ObjectCacheStore] = None,
        schedule_deletion: Optional[DeletionScheduler] = None,
    ):
        self.supabase = supabase
        self.repository = repository
        self.remote = remote
        self.github_token = github_token
        self.store = store or ObjectCacheStore(supabase)
        self.schedule_deletion = schedule_deletion
        self.catalog = FileCatalogService(supabase, repository["id"])

    @property
    def owner(self) -> str:
        return self.repository["owner"]

    @property
    def name(self) -> str:
        return self.repository["name"]

    def require_token(self) -> str:
        if not self.github_token:
            raise CredentialMissingError()
        return self.github_token

    def resolve_branch(self) -> str:
        return self.remote.resolve_default_branch(self.require_token(), self.owner, self.name)

    # =========================================================================
    # Tree Sync
    # =========================================================================

    def sync_tree(self) -> TreeSyncResult:
        """
        Make every remote file an ADDED catalog row.

        New paths get an uncached row and ADDED rows get their updated_at
        refreshed. A PENDING_DELETE row is moved back to ADDED. A DELETED row
        is a tombstone, so it is replaced by a fresh uncached row. Rows for
        paths missing remotely are never removed.
        """
        token = self.require_token()
        branch = self.remote.resolve_default_branch(token, self.owner, self.name)
        entries = self.remote.fetch_tree(token, self.owner, self.name, branch)
        remote_paths = sorted({e.path for e in entries if e.is_file})

        states = self.catalog.get_state_map()
        by_state = {state.value: [] for state in FileState}
        new_paths = []
        for path in remote_paths:
            if path in states:
                by_state[states[path]].append(path)
            else:
                new_paths.append(path)

        inserted = self.catalog.insert_known_paths(new_paths)
        refreshed = self.catalog.refresh_live_paths(by_state[FileState.ADDED.value])
        restored = self.catalog.restore_pending_paths(by_state[FileState.PENDING_DELETE.value])
        restored += self.catalog.replace_tombstones(by_state[FileState.DELETED.value])

        logger.info(
            f"Synced tree of {self.owner}/{self.name}@{branch}: "
            f"{inserted} new, {refreshed} refreshed, {restored} restored",
            extra={"repository_id": self.repository["id"]},
        )
        return TreeSyncResult(
            branch=branch,
            remote_files=len(remote_paths),
            inserted=inserted,
            refreshed=refreshed,
            restored=restored,
        )

    # =========================================================================
    # Directory Listing
    # =========================================================================

    def list_entries(self, parent: str = "") -> List[DirectoryEntry]:
        parent = normalize_path(parent, allow_root=True)
        return list_entries(self.catalog.list_live_paths(), parent)

    def list_flat_tree(self) -> str:
        return render_flat_tree(self.catalog.list_live_paths())

    # =========================================================================
    # Read Path
    # =========================================================================

    def read_file(self, path: str) -> bytes:
        """
        Bytes of a live file.

        A cache miss or an unreachable cache falls through to GitHub; the
        downloaded bytes are written back so the next read is served locally.

        Raises:
            NotFoundError: no live catalog row for path
        """
        path = normalize_path(path)
        row = self.catalog.get_live_file(path)
        if row is None:
            raise NotFoundError(f"File {path}")
        return self.read_row(row)

    def download_file_bytes(self, path: str) -> Tuple[str, bytes]:
        data = self.read_file(path)
        return file_name(normalize_path(path)), data

    def read_file_content(self, path: str) -> str:
        return self.read_file(path).decode("utf-8", errors="replace")

    def read_row(self, row: dict) -> bytes:
        key = row.get("storage_key")
        if key:
            try:
                return self.store.get(key)
            except (ObjectNotFoundError, StorageUnavailableError) as e:
                logger.warning(
                    f"Cache read failed for {row['path']}, falling back to GitHub",
                    extra={"error": e.message},
                )
        return self._populate_from_remote(row)

    def _populate_from_remote(self, row: dict) -> bytes:
        path = row["path"]
        data = self.remote.download_file(
            self.require_token(), self.owner, self.name, path, self.resolve_branch()
        )

        key = storage_key(self.repository["id"], path)
        try:
            self.store.put(key, data)
        except StorageUnavailableError as e:
            # Caller still gets the bytes; the next read retries the cache write
            logger.warning(f"Could not cache {path}", extra={"error": e.message})
            return data

        if row.get("storage_key") != key:
            self.catalog.set_storage_key(row["id"], key)
        return data

    # =========================================================================
    # Write Path
    # =========================================================================

    def upload_file(self, path: str, data: bytes, content_type: Optional[str] = None) -> dict:
        """
        Write-through upload.

        The cache write happens first; a failure there leaves the catalog
        untouched. A catalog failure afterwards deletes the just-written object
        and re-raises the catalog error. Cache keys are per path, so when the
        file was already cached that compensation also drops the previous
        upload; if it was never pushed, its content is lost.

        Raises:
            InvalidPathError: empty or escaping path (before any mutation)
            StorageUnavailableError: cache write failed
        """
        path = normalize_path(path)
        key = storage_key(self.repository["id"], path)
        context = {"repository_id": self.repository["id"], "path": path}

        row = (
            Saga("upload", context=context)
            .step(
                "cache_put",
                lambda: self.store.put(key, data, content_type),
                compensation=lambda: self._drop_cached(path, key),
                compensation_name="cache_delete",
            )
            .step("catalog_upsert", lambda: self.catalog.save_uploaded(path, key))
            .run()
        )

        logger.info(f"Uploaded {path} ({len(data)} bytes) to {self.owner}/{self.name}")
        return row

    def _drop_cached(self, path: str, key: str) -> None:
        logger.warning(
            f"Catalog write for {path} failed, dropping cached object {key}",
            extra={"repository_id": self.repository["id"]},
        )
        self.store.delete(key)

    # =========================================================================
    # Delete Path
    # =========================================================================

    def request_deletion(self, path: str) -> dict:
        """
        Record the deletion intent, then hand off the physical cleanup.

        The caller's success depends only on the PENDING_DELETE write. Cleanup
        failures (or a scheduler that cannot enqueue) leave the row for the
        periodic sweep.

        Raises:
            NotFoundError: no row, or the row is already DELETED
        """
        path = normalize_path(path)
        row = self.catalog.get_file(path)
        if row is None or row["state"] == FileState.DELETED.value:
            raise NotFoundError(f"File {path}")

        if row["state"] == FileState.ADDED.value:
            marked = self.catalog.mark_pending_delete(row["id"])
            if marked is None:
                # Raced with another request that moved it first
                row = self.catalog.get_file(path)
                if row is None or row["state"] != FileState.PENDING_DELETE.value:
                    raise NotFoundError(f"File {path}")
            else:
                row = marked

        logger.info(f"Deletion of {path} requested", extra={"repository_id": self.repository["id"]})
        self._schedule_finalization(row["id"])
        return row

    def _schedule_finalization(self, file_id: int) -> None:
        if self.schedule_deletion is None:
            finalize_deletion(self.supabase, file_id, store=self.store)
            return
        try:
            self.schedule_deletion(file_id)
        except Exception as e:
            logger.warning(
                f"Could not schedule finalization of file {file_id}, leaving it to the sweep",
                extra={"error": str(e)},
            )
