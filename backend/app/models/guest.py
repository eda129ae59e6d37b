"""
Guest identity database model.
"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base


class ParticipantKind(str, enum.Enum):
    """Whether an author or approver reference points at a user or a guest."""
    INTERNAL = "INTERNAL"
    GUEST = "GUEST"


class GuestIdentity(Base):
    """Email-keyed identity for participants reaching an art through a share link."""

    __tablename__ = "guest_identities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)  # Stored lower-cased
    name = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<GuestIdentity(id={self.id}, email='{self.email}')>"
