"""
Approval request, decision and override endpoints.
"""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.access import require_project_owner, require_viewer, resolve_participant
from app.core.database import get_db
from app.core.rate_limit import limiter, GUEST_WRITE_LIMIT
from app.models.user import User
from app.schemas.approval import (
    ApprovalAggregateResponse,
    ApprovalBreakdownResponse,
    ApprovalOverrideCreate,
    ApprovalRequestCreate,
    ApprovalRequestResponse,
    DecisionSubmit,
)
from app.services.access_gate import Action
from app.services.approval_service import ApprovalEngine
from app.services.auth_service import get_current_user, get_current_user_optional
from app.services.version_ledger import VersionLedger
from app.utils.exceptions import ForbiddenError

router = APIRouter()
ledger = VersionLedger()
approval_engine = ApprovalEngine(ledger=ledger)


@router.post(
    "/arts/{art_id}/approval-requests",
    response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_approval_request(
    art_id: UUID,
    request_data: ApprovalRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Close a version for approval by the given approvers."""
    version = await ledger.get_version(db, art_id, request_data.version_number)
    approval_request = await approval_engine.open_request(
        db,
        version.id,
        request_data.rule,
        request_data.approver_ids,
        opened_by=current_user.id,
    )
    return ApprovalRequestResponse.model_validate(approval_request)


@router.patch("/approval-requests/{request_id}/decisions", response_model=ApprovalAggregateResponse)
@limiter.limit(GUEST_WRITE_LIMIT)
async def submit_decision(
    request: Request,
    request_id: UUID,
    decision_data: DecisionSubmit,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a decision and return the updated aggregate.

    Internal users decide as themselves. Guests send the share token and
    their email.
    """
    approval_request = await approval_engine.get_request(db, request_id)
    version = await ledger.get_version_by_id(db, approval_request.art_version_id)

    approver, capability = await resolve_participant(
        db,
        current_user,
        version.art_id,
        Action.DECIDE,
        token=decision_data.token,
        email=decision_data.email,
        name=decision_data.name,
    )
    if capability is None and decision_data.approver_ref and decision_data.approver_ref != approver.ref:
        raise ForbiddenError("Decisions can only be recorded by the approver themselves")

    aggregate = await approval_engine.decide(
        db,
        request_id,
        approver,
        decision_data.decision,
        comment=decision_data.comment,
        capability=capability,
    )
    return ApprovalAggregateResponse.model_validate(aggregate)


@router.get("/arts/{art_id}/versions/{version_number}/approvals", response_model=ApprovalBreakdownResponse)
async def get_approvals(
    art_id: UUID,
    version_number: int,
    token: Optional[str] = Query(None, description="Share token for guest access"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    """Aggregate outcome and per-approver breakdown of a version."""
    await require_viewer(db, current_user, art_id, token)
    breakdown = await approval_engine.breakdown(db, art_id, version_number)
    return ApprovalBreakdownResponse.model_validate(breakdown)


@router.post("/arts/{art_id}/versions/{version_number}/override", response_model=ApprovalBreakdownResponse)
async def override_approval(
    art_id: UUID,
    version_number: int,
    override_data: Optional[ApprovalOverrideCreate] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Force-approve a version. Project owner or admin only."""
    art = await ledger.get_art(db, art_id)
    await require_project_owner(db, art, current_user)

    version = await ledger.get_version(db, art_id, version_number)
    await approval_engine.override(
        db,
        version.id,
        acting_principal_id=current_user.id,
        reason=override_data.reason if override_data else None,
    )
    breakdown = await approval_engine.breakdown(db, art_id, version_number)
    return ApprovalBreakdownResponse.model_validate(breakdown)
