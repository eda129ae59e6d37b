"""
Feedback thread database models.
"""

import enum
import uuid

from sqlalchemy import Column, Text, String, Float, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base
from app.models.guest import ParticipantKind


class FeedbackKind(str, enum.Enum):
    TEXT = "TEXT"
    AUDIO = "AUDIO"


class FeedbackStatus(str, enum.Enum):
    """Advisory triage state; any status may follow any other."""
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED = "RESOLVED"
    ARCHIVED = "ARCHIVED"


class FeedbackItem(Base):
    """A comment anchored to one version, optionally at a point on its preview."""

    __tablename__ = "feedback_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    art_id = Column(UUID(as_uuid=True), ForeignKey("arts.id"), nullable=False, index=True)
    art_version_id = Column(UUID(as_uuid=True), ForeignKey("art_versions.id"), nullable=False, index=True)
    author_ref = Column(UUID(as_uuid=True), nullable=False)
    author_kind = Column(SQLEnum(ParticipantKind, native_enum=False, length=10), nullable=False)
    kind = Column(SQLEnum(FeedbackKind, native_enum=False, length=10), nullable=False)
    content = Column(Text, nullable=True)
    audio_ref = Column(String(1000), nullable=True)

    # Position anchor: relative in [0, 1], absolute pixels as observed when posted
    rel_x = Column(Float, nullable=True)
    rel_y = Column(Float, nullable=True)
    abs_x = Column(Float, nullable=True)
    abs_y = Column(Float, nullable=True)

    status = Column(SQLEnum(FeedbackStatus, native_enum=False, length=20), nullable=False, default=FeedbackStatus.OPEN)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    @property
    def has_position(self) -> bool:
        return self.rel_x is not None

    def __repr__(self):
        return f"<FeedbackItem(id={self.id}, kind={self.kind}, status={self.status})>"


class FeedbackReply(Base):
    """A reply in the thread under one feedback item."""

    __tablename__ = "feedback_replies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    feedback_id = Column(UUID(as_uuid=True), ForeignKey("feedback_items.id"), nullable=False, index=True)
    author_ref = Column(UUID(as_uuid=True), nullable=False)
    author_kind = Column(SQLEnum(ParticipantKind, native_enum=False, length=10), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
