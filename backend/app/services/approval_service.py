"""
Approval engine: review requests per version, individual decisions and their
aggregate outcome under a quorum rule.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.models.approval import (
    ApprovalDecision,
    ApprovalOverride,
    ApprovalRequest,
    Decision,
    QuorumRule,
)
from app.models.art import ArtVersion, VersionStatus
from app.models.guest import ParticipantKind
from app.models.user import User
from app.services.access_gate import AccessGate, Action, Capability
from app.services.identity_service import IdentityResolver, Participant
from app.services.version_ledger import VersionLedger
from app.utils.exceptions import (
    ConflictError,
    ExpiredLinkError,
    InvalidStateError,
    NotAuthorizedApproverError,
    NotFoundError,
    RequestClosedError,
)
from app.utils.formatters import ensure_utc

OUTCOME_TO_STATUS = {
    Decision.APPROVED: VersionStatus.APPROVED,
    Decision.REJECTED: VersionStatus.REJECTED,
}


def compute_outcome(
    rule: QuorumRule,
    required_ids: Iterable[UUID],
    decisions: Mapping[UUID, Decision],
) -> Decision:
    """
    Aggregate individual decisions into one outcome.

    A single rejection vetoes the request under either rule. Under ALL every
    required approver must have approved; under ANY one approval is enough.
    Anything else is still PENDING.

    Args:
        rule: Quorum rule of the request
        required_ids: Approvers named when the request was opened
        decisions: Current decision per approver reference

    Returns:
        PENDING, APPROVED or REJECTED
    """
    values = list(decisions.values())
    if Decision.REJECTED in values:
        return Decision.REJECTED

    if rule == QuorumRule.ALL:
        required = set(required_ids)
        if required and all(decisions.get(ref) == Decision.APPROVED for ref in required):
            return Decision.APPROVED
    elif rule == QuorumRule.ANY:
        if Decision.APPROVED in values:
            return Decision.APPROVED

    return Decision.PENDING


@dataclass
class ApprovalAggregate:
    """Fresh view of one request: its outcome and every decision behind it."""
    request_id: UUID
    art_version_id: UUID
    rule: QuorumRule
    outcome: Decision
    required_ids: Set[UUID]
    decisions: List[ApprovalDecision] = field(default_factory=list)
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None


@dataclass
class ApprovalBreakdown:
    art_id: UUID
    version_id: UUID
    version_number: int
    version_status: VersionStatus
    request: Optional[ApprovalAggregate] = None
    override: Optional[ApprovalOverride] = None


class ApprovalEngine:
    """Opens, decides, aggregates and overrides approval requests."""

    def __init__(
        self,
        ledger: Optional[VersionLedger] = None,
        gate: Optional[AccessGate] = None,
        identities: Optional[IdentityResolver] = None,
        clock=None,
    ):
        self.clock = clock or system_clock
        self.ledger = ledger or VersionLedger(clock=self.clock)
        self.gate = gate or AccessGate(clock=self.clock)
        self.identities = identities or IdentityResolver(clock=self.clock)

    async def submit_for_review(self, db: AsyncSession, version_id: UUID) -> ArtVersion:
        """Move a DRAFT version to PENDING_REVIEW."""
        version = await self.ledger.get_version_by_id(db, version_id)
        if version.status != VersionStatus.DRAFT:
            raise InvalidStateError(
                f"Only DRAFT versions can be submitted for review (v{version.version_number} is {version.status.value})"
            )

        await self.ledger.record_status(db, version, VersionStatus.PENDING_REVIEW)
        await db.commit()

        logger.info(f"Art {version.art_id} v{version.version_number} submitted for review")
        return version

    async def get_request(self, db: AsyncSession, request_id: UUID, for_update: bool = False) -> ApprovalRequest:
        query = select(ApprovalRequest).where(ApprovalRequest.id == request_id)
        if for_update:
            # Serializes concurrent decisions on one request in PostgreSQL
            query = query.with_for_update()
        result = await db.execute(query)
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError("ApprovalRequest", request_id)
        return request

    async def get_open_request(self, db: AsyncSession, version_id: UUID) -> Optional[ApprovalRequest]:
        result = await db.execute(
            select(ApprovalRequest).where(
                ApprovalRequest.art_version_id == version_id,
                ApprovalRequest.closed_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def open_request(
        self,
        db: AsyncSession,
        version_id: UUID,
        rule: QuorumRule,
        approver_ids: Iterable[UUID],
        opened_by: Optional[UUID] = None,
    ) -> ApprovalRequest:
        """
        Close a version for approval.

        The version moves to IN_REVIEW and every required approver starts
        with a PENDING decision.

        Raises:
            NotFoundError: Version or an approver does not exist
            ConflictError: The version already has an open request
            InvalidStateError: Version is not DRAFT or PENDING_REVIEW, or no approvers given
        """
        version = await self.ledger.get_version_by_id(db, version_id)

        if await self.get_open_request(db, version_id) is not None:
            raise ConflictError(f"Art {version.art_id} v{version.version_number} already has an open approval request")

        if version.status not in (VersionStatus.DRAFT, VersionStatus.PENDING_REVIEW):
            raise InvalidStateError(
                f"Cannot open approval for v{version.version_number} in status {version.status.value}"
            )

        required: List[UUID] = list(dict.fromkeys(approver_ids))
        if not required:
            raise InvalidStateError("An approval request needs at least one approver")

        found = await db.execute(select(User.id).where(User.id.in_(required)))
        known = set(found.scalars().all())
        for approver_id in required:
            if approver_id not in known:
                raise NotFoundError("User", approver_id)

        now = self.clock.now()
        request = ApprovalRequest(
            art_version_id=version.id,
            rule=rule,
            required_approver_ids=[str(approver_id) for approver_id in required],
            opened_by=opened_by,
            opened_at=now,
        )
        try:
            async with db.begin_nested():
                db.add(request)
        except IntegrityError:
            raise ConflictError(f"Art {version.art_id} v{version.version_number} already has an open approval request")

        db.add_all([
            ApprovalDecision(
                approval_request_id=request.id,
                approver_ref=approver_id,
                approver_kind=ParticipantKind.INTERNAL,
                decision=Decision.PENDING,
                decided_at=now,
            )
            for approver_id in required
        ])
        await self.ledger.record_status(db, version, VersionStatus.IN_REVIEW)
        await db.commit()

        logger.info(
            f"Opened approval request {request.id} for art {version.art_id} v{version.version_number} "
            f"(rule={rule.value}, approvers={len(required)})"
        )
        return request

    close_for_approval = open_request

    async def decide(
        self,
        db: AsyncSession,
        request_id: UUID,
        approver: Participant,
        decision: Decision,
        comment: Optional[str] = None,
        capability: Optional[Capability] = None,
    ) -> ApprovalAggregate:
        """
        Record or replace one approver's decision and re-aggregate.

        A terminal outcome closes the request and sets the version status.

        Raises:
            NotFoundError: Request does not exist
            RequestClosedError: Request already resolved
            NotAuthorizedApproverError: Approver is neither required nor a guest with a link to this art
            ForbiddenError: The guest's link does not allow decisions
        """
        request = await self.get_request(db, request_id, for_update=True)
        if request.is_closed:
            raise RequestClosedError(request_id)

        version = await self.ledger.get_version_by_id(db, request.art_version_id)
        await self._check_approver(db, request, version, approver, capability)

        now = self.clock.now()
        await self._upsert_decision(db, request.id, approver, decision, comment, now)

        aggregate = await self._aggregate(db, request)
        if aggregate.outcome in OUTCOME_TO_STATUS:
            await self.ledger.record_status(db, version, OUTCOME_TO_STATUS[aggregate.outcome])
            request.closed_at = now
            aggregate.closed_at = now

        await db.commit()

        logger.info(
            f"Decision {decision.value} by {approver.kind.value.lower()} {approver.ref} "
            f"on request {request_id}; aggregate {aggregate.outcome.value}"
        )
        if aggregate.is_closed:
            logger.info(
                f"Approval request {request_id} closed: art {version.art_id} "
                f"v{version.version_number} {aggregate.outcome.value}"
            )
        return aggregate

    async def decide_as_guest(
        self,
        db: AsyncSession,
        request_id: UUID,
        token: str,
        email: str,
        decision: Decision,
        comment: Optional[str] = None,
        name: Optional[str] = None,
    ) -> ApprovalAggregate:
        """Validate the share link, resolve the guest by email and decide."""
        request = await self.get_request(db, request_id)
        version = await self.ledger.get_version_by_id(db, request.art_version_id)
        capability = await self.gate.authorize(db, token, version.art_id, Action.DECIDE)
        guest = await self.identities.resolve_guest(db, email, name)
        return await self.decide(
            db,
            request_id,
            Participant.guest(guest.id),
            decision,
            comment=comment,
            capability=capability,
        )

    async def _check_approver(
        self,
        db: AsyncSession,
        request: ApprovalRequest,
        version: ArtVersion,
        approver: Participant,
        capability: Optional[Capability],
    ) -> None:
        if approver.kind == ParticipantKind.INTERNAL:
            if approver.ref not in request.required_ids:
                raise NotAuthorizedApproverError(approver.ref)
            return

        if capability is None or capability.subject_id != version.art_id:
            raise NotAuthorizedApproverError(approver.ref, detail="no share link for this art")

        expires_at = ensure_utc(capability.expires_at)
        if expires_at is not None and self.clock.now() >= expires_at:
            raise ExpiredLinkError()
        capability.require(Action.DECIDE)

        if await self.identities.get_guest_by_id(db, approver.ref) is None:
            raise NotAuthorizedApproverError(approver.ref, detail="unknown guest")

    async def _upsert_decision(
        self,
        db: AsyncSession,
        request_id: UUID,
        approver: Participant,
        decision: Decision,
        comment: Optional[str],
        now: datetime,
    ) -> ApprovalDecision:
        row = await self._find_decision(db, request_id, approver.ref)
        if row is None:
            row = ApprovalDecision(
                approval_request_id=request_id,
                approver_ref=approver.ref,
                approver_kind=approver.kind,
                decision=decision,
                comment=comment,
                decided_at=now,
            )
            try:
                async with db.begin_nested():
                    db.add(row)
                return row
            except IntegrityError:
                # Same approver deciding concurrently; last write wins
                row = await self._find_decision(db, request_id, approver.ref)
                if row is None:
                    raise

        row.decision = decision
        row.comment = comment
        row.decided_at = now
        await db.flush()
        return row

    async def _find_decision(self, db: AsyncSession, request_id: UUID, approver_ref: UUID) -> Optional[ApprovalDecision]:
        result = await db.execute(
            select(ApprovalDecision).where(
                ApprovalDecision.approval_request_id == request_id,
                ApprovalDecision.approver_ref == approver_ref,
            )
        )
        return result.scalar_one_or_none()

    async def _aggregate(self, db: AsyncSession, request: ApprovalRequest) -> ApprovalAggregate:
        result = await db.execute(
            select(ApprovalDecision)
            .where(ApprovalDecision.approval_request_id == request.id)
            .order_by(ApprovalDecision.decided_at.asc())
        )
        rows = list(result.scalars().all())
        by_ref: Dict[UUID, Decision] = {row.approver_ref: row.decision for row in rows}

        return ApprovalAggregate(
            request_id=request.id,
            art_version_id=request.art_version_id,
            rule=request.rule,
            outcome=compute_outcome(request.rule, request.required_ids, by_ref),
            required_ids=request.required_ids,
            decisions=rows,
            opened_at=ensure_utc(request.opened_at),
            closed_at=ensure_utc(request.closed_at),
        )

    async def aggregate(self, db: AsyncSession, request_id: UUID) -> ApprovalAggregate:
        """Recompute the outcome of a request from its current decisions."""
        request = await self.get_request(db, request_id)
        return await self._aggregate(db, request)

    async def breakdown(
        self,
        db: AsyncSession,
        art_id: UUID,
        version_number: Optional[int] = None,
    ) -> ApprovalBreakdown:
        """Latest request of a version with each approver's decision, plus any override."""
        version = await self.ledger.get_version(db, art_id, version_number)

        result = await db.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.art_version_id == version.id)
            .order_by(ApprovalRequest.opened_at.desc())
            .limit(1)
        )
        request = result.scalar_one_or_none()

        result = await db.execute(
            select(ApprovalOverride)
            .where(ApprovalOverride.art_version_id == version.id)
            .order_by(ApprovalOverride.created_at.desc())
            .limit(1)
        )
        override = result.scalar_one_or_none()

        return ApprovalBreakdown(
            art_id=version.art_id,
            version_id=version.id,
            version_number=version.version_number,
            version_status=version.status,
            request=await self._aggregate(db, request) if request else None,
            override=override,
        )

    async def override(
        self,
        db: AsyncSession,
        version_id: UUID,
        acting_principal_id: UUID,
        reason: Optional[str] = None,
    ) -> ApprovalOverride:
        """
        Force a version to APPROVED whatever its decisions say.

        Only records who did it; checking that the principal may do so is the
        caller's job.
        """
        version = await self.ledger.get_version_by_id(db, version_id)
        now = self.clock.now()

        request = await self.get_open_request(db, version_id)
        if request is not None:
            request.closed_at = now

        record = ApprovalOverride(
            art_version_id=version.id,
            approval_request_id=request.id if request else None,
            acting_principal_id=acting_principal_id,
            previous_status=version.status,
            reason=reason,
            created_at=now,
        )
        db.add(record)
        await self.ledger.record_status(db, version, VersionStatus.APPROVED)
        await db.commit()

        logger.warning(
            f"Approval override on art {version.art_id} v{version.version_number} "
            f"by {acting_principal_id} (was {record.previous_status.value})"
        )
        return record
