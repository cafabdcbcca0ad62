"""File and session Pydantic schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class FileResponse(BaseModel):
    id: int
    path: str
    storage_key: Optional[str] = None
    state: Literal["added", "pending_delete", "deleted"]
    updated_at: Optional[datetime] = None


class UploadResponse(BaseModel):
    file: FileResponse
    message: str


class FileContentResponse(BaseModel):
    path: str
    content: str


class DeletionResponse(BaseModel):
    path: str
    state: Literal["pending_delete", "deleted"]
    message: str


class EditLinkRequest(BaseModel):
    path: str = Field(..., min_length=1)


class EditLinkResponse(BaseModel):
    path: str
    url: str
    expires_at: datetime


class TokenRequest(BaseModel):
    """Request model for storing a GitHub token."""
    token: str = Field(..., min_length=1)


class TokenStatusResponse(BaseModel):
    configured: bool
