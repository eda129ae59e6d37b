"""
Art, version ledger and file database models.
"""

import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base


class VersionStatus(str, enum.Enum):
    """Review state of one art version."""
    DRAFT = "DRAFT"                    # Uploaded, not yet offered for review
    PENDING_REVIEW = "PENDING_REVIEW"  # Ready to be closed for approval
    IN_REVIEW = "IN_REVIEW"            # Approval request open
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (VersionStatus.APPROVED, VersionStatus.REJECTED)


class FileKind(str, enum.Enum):
    """Role of a stored file within a version."""
    SOURCE = "SOURCE"
    PREVIEW = "PREVIEW"
    ATTACHMENT = "ATTACHMENT"


class Art(Base):
    """A versioned creative asset under review."""

    __tablename__ = "arts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(300), nullable=False)
    kind = Column(String(100), nullable=False)  # LOGO, BANNER, or the source MIME type
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Denormalized from the ledger; written only alongside a new version or a status transition
    current_version_number = Column(Integer, nullable=False, default=0)
    current_status = Column(SQLEnum(VersionStatus, native_enum=False, length=20), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Art(id={self.id}, name='{self.name}', v{self.current_version_number})>"


class ArtVersion(Base):
    """One immutable snapshot of an art. Only ``status`` changes after insert."""

    __tablename__ = "art_versions"
    __table_args__ = (
        UniqueConstraint("art_id", "version_number", name="uq_art_versions_art_number"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    art_id = Column(UUID(as_uuid=True), ForeignKey("arts.id"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    status = Column(SQLEnum(VersionStatus, native_enum=False, length=20), nullable=False, default=VersionStatus.DRAFT)
    source_file_ref = Column(String(1000), nullable=False)
    preview_file_ref = Column(String(1000), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    files = relationship(
        "ArtFile",
        back_populates="version",
        lazy="selectin",
        order_by="ArtFile.created_at",
    )

    def __repr__(self):
        return f"<ArtVersion(art_id={self.art_id}, v{self.version_number}, status={self.status})>"


class ArtFile(Base):
    """A blob belonging to a version: its source, preview or an attachment."""

    __tablename__ = "art_files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    art_id = Column(UUID(as_uuid=True), ForeignKey("arts.id"), nullable=False, index=True)
    art_version_id = Column(UUID(as_uuid=True), ForeignKey("art_versions.id"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    kind = Column(SQLEnum(FileKind, native_enum=False, length=20), nullable=False)
    path = Column(String(1000), nullable=False, unique=True)
    mime = Column(String(200), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    version = relationship("ArtVersion", back_populates="files")

    def __repr__(self):
        return f"<ArtFile(kind={self.kind}, path='{self.path}')>"
