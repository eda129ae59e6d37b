"""
Feedback and reply Pydantic schemas.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.feedback import FeedbackItem, FeedbackKind, FeedbackStatus
from app.models.guest import ParticipantKind


class GuestCredentials(BaseModel):
    """Share token and email sent by guests; internal users leave them empty."""
    token: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = Field(None, max_length=200)


class PositionSchema(BaseModel):
    """Relative (0-1) and absolute pixel anchor on the version preview."""
    rel_x: Optional[float] = None
    rel_y: Optional[float] = None
    abs_x: Optional[float] = None
    abs_y: Optional[float] = None


class FeedbackCreate(GuestCredentials):
    """Schema for posting feedback."""
    version_id: UUID
    kind: FeedbackKind = FeedbackKind.TEXT
    content: Optional[str] = None
    audio_ref: Optional[str] = Field(None, max_length=1000)
    position: Optional[PositionSchema] = None


class FeedbackStatusUpdate(GuestCredentials):
    """Schema for changing a feedback item's triage status."""
    status: FeedbackStatus


class FeedbackResponse(BaseModel):
    """Schema for feedback item response."""
    id: UUID
    art_id: UUID
    art_version_id: UUID
    author_ref: UUID
    author_kind: ParticipantKind
    kind: FeedbackKind
    content: Optional[str]
    audio_ref: Optional[str]
    position: Optional[PositionSchema] = None
    status: FeedbackStatus
    created_at: datetime

    @classmethod
    def from_item(cls, item: FeedbackItem) -> "FeedbackResponse":
        position = None
        if item.has_position:
            position = PositionSchema(rel_x=item.rel_x, rel_y=item.rel_y, abs_x=item.abs_x, abs_y=item.abs_y)
        return cls(
            id=item.id,
            art_id=item.art_id,
            art_version_id=item.art_version_id,
            author_ref=item.author_ref,
            author_kind=item.author_kind,
            kind=item.kind,
            content=item.content,
            audio_ref=item.audio_ref,
            position=position,
            status=item.status,
            created_at=item.created_at,
        )


class VersionFeedback(BaseModel):
    """Feedback items of one version."""
    version_number: int
    items: List[FeedbackResponse] = []


class ArtFeedbackResponse(BaseModel):
    """Feedback across every version of an art, oldest version first."""
    art_id: UUID
    versions: List[VersionFeedback] = []


class ReplyCreate(GuestCredentials):
    """Schema for replying to a feedback item."""
    content: str = Field(..., min_length=1)
    status_after: Optional[FeedbackStatus] = None


class ReplyResponse(BaseModel):
    """Schema for reply response."""
    id: UUID
    feedback_id: UUID
    author_ref: UUID
    author_kind: ParticipantKind
    content: str
    created_at: datetime

    class Config:
        from_attributes = True
