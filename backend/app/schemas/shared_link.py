"""
Share link Pydantic schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.shared_link import SubjectType
from app.schemas.art import ArtResponse, ArtVersionResponse


class SharedLinkCreate(BaseModel):
    """Schema for issuing a share link."""
    read_only: bool = False
    can_comment: bool = True
    can_download: bool = False
    expires_at: Optional[datetime] = None
    expires_in_hours: Optional[int] = Field(None, gt=0, le=24 * 365)


class SharedLinkResponse(BaseModel):
    """Schema for share link response. The token is only shown here."""
    id: UUID
    token: str
    subject_type: SubjectType
    subject_id: UUID
    read_only: bool
    can_comment: bool
    can_download: bool
    expires_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class CapabilityResponse(BaseModel):
    """What the presented link allows."""
    read_only: bool
    can_comment: bool
    can_download: bool
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class SharedArtResponse(BaseModel):
    """Art reached through a share link, with its current version."""
    art: ArtResponse
    version: Optional[ArtVersionResponse] = None
    capability: CapabilityResponse
    preview_url: Optional[str] = None
    download_url: Optional[str] = None
