"""
Second phase of file deletion.

finalize_deletion removes the cached object of a PENDING_DELETE row and then
moves the row to DELETED. retry_pending_deletes runs it over every row still
PENDING_DELETE. Both are idempotent and safe to run concurrently: an absent
object counts as removed, and the state change only applies to rows that are
still PENDING_DELETE.
"""

import logging
from typing import Optional

from supabase import Client

from repodesk.exceptions import StorageUnavailableError
from repodesk.services.db.files import FileCatalogService, FileState
from repodesk.services.storage import ObjectCacheStore

logger = logging.getLogger(__name__)


def finalize_deletion(
    supabase: Client,
    file_id: int,
    store: Optional[ObjectCacheStore] = None,
) -> bool:
    """
    Returns:
        True if the row is DELETED when this returns, False if it stays
        PENDING_DELETE (cache unreachable) or is gone or was re-uploaded
    """
    row = FileCatalogService.get_by_id(supabase, file_id)
    if row is None:
        logger.warning(f"File {file_id} vanished before deletion was finalized")
        return False
    if row["state"] == FileState.DELETED.value:
        return True
    if row["state"] != FileState.PENDING_DELETE.value:
        logger.info(f"File {file_id} was re-added, skipping deletion")
        return False

    key = row.get("storage_key")
    if key:
        store = store or ObjectCacheStore(supabase)
        try:
            store.delete(key)
        except StorageUnavailableError as e:
            logger.warning(
                f"Cache delete failed for {row['path']}, left PENDING_DELETE",
                extra={"error": e.message},
            )
            return False

    if FileCatalogService.mark_deleted(supabase, file_id):
        logger.info(f"Deleted {row['path']}", extra={"repository_id": row["repository_id"]})
        return True

    # Another worker finished it between our read and our update
    current = FileCatalogService.get_by_id(supabase, file_id)
    return bool(current and current["state"] == FileState.DELETED.value)


def retry_pending_deletes(
    supabase: Client,
    store: Optional[ObjectCacheStore] = None,
    limit: int = 500,
) -> dict:
    """Sweep PENDING_DELETE rows. Returns counts of finalized and remaining rows."""
    store = store or ObjectCacheStore(supabase)
    pending = FileCatalogService.list_pending_deletes(supabase, limit=limit)

    finalized = 0
    for row in pending:
        if finalize_deletion(supabase, row["id"], store=store):
            finalized += 1

    if pending:
        logger.info(f"Pending delete sweep: {finalized}/{len(pending)} finalized")

    return {
        "scanned": len(pending),
        "finalized": finalized,
        "remaining": len(pending) - finalized,
    }
