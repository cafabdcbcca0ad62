"""Repository Pydantic schemas for request/response validation."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class RegisterRepositoryRequest(BaseModel):
    """Request model for registering a repository."""
    url: str = Field(..., min_length=1, description="https://github.com/<owner>/<name>")


class RepositoryResponse(BaseModel):
    id: int
    url: str
    owner: str
    name: str
    created_at: Optional[datetime] = None


class TreeSyncResponse(BaseModel):
    branch: str
    remote_files: int
    inserted: int
    refreshed: int
    restored: int


class RegisterRepositoryResponse(BaseModel):
    repository: RepositoryResponse
    sync: Optional[TreeSyncResponse] = None
    message: str


class ResyncQueuedResponse(BaseModel):
    task_id: str
    message: str


class DirectoryEntryResponse(BaseModel):
    name: str
    path: str
    kind: Literal["dir", "file"]


class FlatTreeResponse(BaseModel):
    paths: List[str]
    message: str


class PushFileResultResponse(BaseModel):
    path: str
    outcome: Literal["success", "conflict", "error"]
    detail: str = ""


class PushResponse(BaseModel):
    """Aggregate push report; message is the rendered text for chat."""
    branch: str
    succeeded: int
    conflicts: int
    errors: int
    results: List[PushFileResultResponse]
    message: str
