"""
File sync service module.

- FileSyncService: tree sync, listing, reads, uploads, deletion requests
- PushService: per-file conditioned push with an aggregate report
- finalize_deletion / retry_pending_deletes: second phase of deletion
"""

from .deletion import finalize_deletion, retry_pending_deletes
from .file_sync import FileSyncService, TreeSyncResult
from .listing import DirectoryEntry, EntryKind
from .push import PushOutcome, PushReport, PushService

__all__ = [
    "FileSyncService",
    "TreeSyncResult",
    "DirectoryEntry",
    "EntryKind",
    "PushService",
    "PushReport",
    "PushOutcome",
    "finalize_deletion",
    "retry_pending_deletes",
]
