"""
Approval request, decision and override Pydantic schemas.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.approval import Decision, QuorumRule
from app.models.art import VersionStatus
from app.models.guest import ParticipantKind


class ApprovalRequestCreate(BaseModel):
    """Schema for closing a version for approval."""
    rule: QuorumRule = QuorumRule.ALL
    approver_ids: List[UUID] = Field(default_factory=list)
    version_number: Optional[int] = Field(None, ge=1, description="Defaults to the current version")


class ApprovalRequestResponse(BaseModel):
    """Schema for approval request response."""
    id: UUID
    art_version_id: UUID
    rule: QuorumRule
    required_approver_ids: List[UUID]
    opened_by: Optional[UUID]
    opened_at: datetime
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True


class DecisionSubmit(BaseModel):
    """
    Schema for recording a decision.

    Internal users decide as themselves; guests send their share token and email.
    """
    decision: Decision
    comment: Optional[str] = Field(None, max_length=2000)
    approver_ref: Optional[UUID] = None
    token: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = Field(None, max_length=200)


class ApprovalDecisionResponse(BaseModel):
    """Schema for one approver's decision."""
    approver_ref: UUID
    approver_kind: ParticipantKind
    decision: Decision
    comment: Optional[str]
    decided_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApprovalAggregateResponse(BaseModel):
    """Schema for the aggregate outcome of a request."""
    request_id: UUID
    art_version_id: UUID
    rule: QuorumRule
    outcome: Decision
    required_ids: List[UUID]
    decisions: List[ApprovalDecisionResponse] = []
    opened_at: Optional[datetime]
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApprovalOverrideCreate(BaseModel):
    """Schema for an administrative force-approval."""
    reason: Optional[str] = Field(None, max_length=1000)


class ApprovalOverrideResponse(BaseModel):
    """Schema for override audit record."""
    id: UUID
    approval_request_id: Optional[UUID]
    acting_principal_id: UUID
    previous_status: VersionStatus
    reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ApprovalBreakdownResponse(BaseModel):
    """Schema for a version's approval state with per-approver detail."""
    art_id: UUID
    version_id: UUID
    version_number: int
    version_status: VersionStatus
    request: Optional[ApprovalAggregateResponse] = None
    override: Optional[ApprovalOverrideResponse] = None

    class Config:
        from_attributes = True
