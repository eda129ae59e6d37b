"""
Shared link database model.
"""

import enum
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base


class SubjectType(str, enum.Enum):
    ART = "ART"


class SharedLink(Base):
    """Expiring, capability-scoped guest credential.

    Revoked by deleting the row; never updated.
    """

    __tablename__ = "shared_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token = Column(String(128), nullable=False, unique=True, index=True)
    subject_type = Column(SQLEnum(SubjectType, native_enum=False, length=20), nullable=False, default=SubjectType.ART)
    subject_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    read_only = Column(Boolean, nullable=False, default=False)
    can_comment = Column(Boolean, nullable=False, default=True)
    can_download = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<SharedLink(id={self.id}, subject={self.subject_type}:{self.subject_id})>"
