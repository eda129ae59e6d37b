"""
Approval request, decision and override database models.
"""

import enum
import uuid

from sqlalchemy import (
    Column, String, Text, DateTime, ForeignKey, JSON, Index, UniqueConstraint, Enum as SQLEnum, text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.core.clock import utcnow
from app.core.database import Base
from app.models.art import VersionStatus
from app.models.guest import ParticipantKind


class QuorumRule(str, enum.Enum):
    """How many required approvers must approve."""
    ALL = "ALL"
    ANY = "ANY"


class Decision(str, enum.Enum):
    """One approver's current position on a request."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalRequest(Base):
    """The review cycle for one version, bound to a quorum rule."""

    __tablename__ = "approval_requests"
    __table_args__ = (
        # At most one open request per version
        Index(
            "uq_approval_requests_open_version",
            "art_version_id",
            unique=True,
            postgresql_where=text("closed_at IS NULL"),
            sqlite_where=text("closed_at IS NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    art_version_id = Column(UUID(as_uuid=True), ForeignKey("art_versions.id"), nullable=False, index=True)
    rule = Column(SQLEnum(QuorumRule, native_enum=False, length=10), nullable=False)
    required_approver_ids = Column(JSON, nullable=False)  # List of user id strings
    opened_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    opened_at = Column(DateTime(timezone=True), default=utcnow)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def required_ids(self) -> set:
        return {uuid.UUID(str(value)) for value in (self.required_approver_ids or [])}

    def __repr__(self):
        return f"<ApprovalRequest(id={self.id}, rule={self.rule}, closed={self.is_closed})>"


class ApprovalDecision(Base):
    """One row per approver per request; later decisions overwrite earlier ones."""

    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("approval_request_id", "approver_ref", name="uq_approval_decisions_request_approver"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    approval_request_id = Column(UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=False, index=True)
    approver_ref = Column(UUID(as_uuid=True), nullable=False)  # users.id or guest_identities.id
    approver_kind = Column(SQLEnum(ParticipantKind, native_enum=False, length=10), nullable=False)
    decision = Column(SQLEnum(Decision, native_enum=False, length=10), nullable=False, default=Decision.PENDING)
    comment = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<ApprovalDecision(request={self.approval_request_id}, approver={self.approver_ref}, {self.decision})>"


class ApprovalOverride(Base):
    """Audit record of an administrative force-approval."""

    __tablename__ = "approval_overrides"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    art_version_id = Column(UUID(as_uuid=True), ForeignKey("art_versions.id"), nullable=False, index=True)
    approval_request_id = Column(UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=True)
    acting_principal_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    previous_status = Column(SQLEnum(VersionStatus, native_enum=False, length=20), nullable=False)
    reason = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
