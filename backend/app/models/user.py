"""
User-related database models.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base


class User(Base):
    """Internal user: designers, project owners and administrators."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Basic information
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)

    # Authentication
    hashed_password = Column(String(128), nullable=False)
    is_active = Column(Boolean, default=True)

    # Authorization
    role = Column(String(20), default="user")  # admin, user

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', email='{self.email}')>"

    def is_admin(self) -> bool:
        """Check if user is admin."""
        return self.role == "admin"
