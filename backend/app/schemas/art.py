"""
Art, version and file Pydantic schemas.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel

from app.models.art import FileKind, VersionStatus


class ArtFileResponse(BaseModel):
    """Schema for a stored file of a version."""
    id: UUID
    kind: FileKind
    path: str
    mime: str
    size_bytes: int
    width: Optional[int]
    height: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class ArtVersionResponse(BaseModel):
    """Schema for art version response."""
    id: UUID
    art_id: UUID
    version_number: int
    status: VersionStatus
    source_file_ref: str
    preview_file_ref: Optional[str]
    created_by: Optional[UUID]
    created_at: datetime
    files: List[ArtFileResponse] = []

    class Config:
        from_attributes = True


class ArtResponse(BaseModel):
    """Schema for art response."""
    id: UUID
    name: str
    kind: str
    project_id: UUID
    author_id: UUID
    current_version_number: int
    current_status: Optional[VersionStatus]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ArtCreatedResponse(BaseModel):
    """Schema for a newly created art and its first version."""
    art: ArtResponse
    version: ArtVersionResponse
