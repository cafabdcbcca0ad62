"""Database service modules."""

from .files import FileCatalogService, FileState
from .repositories import RepositoryService
from .credentials import CredentialService
from .outbox import TrackingOutboxService, OutboxStatus
from .editor_sessions import EditorSessionService

__all__ = [
    "FileCatalogService",
    "FileState",
    "RepositoryService",
    "CredentialService",
    "TrackingOutboxService",
    "OutboxStatus",
    "EditorSessionService",
]
