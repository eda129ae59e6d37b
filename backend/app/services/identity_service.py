"""
Identity resolution for internal users and email-identified guests.
"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.models.guest import GuestIdentity, ParticipantKind
from app.models.user import User
from app.utils.exceptions import InvalidInputError, UnauthenticatedError


@dataclass(frozen=True)
class InternalIdentity:
    user_id: UUID
    is_admin: bool = False


@dataclass(frozen=True)
class Participant:
    """Author or approver reference, tagged with who it points at."""
    ref: UUID
    kind: ParticipantKind

    @classmethod
    def internal(cls, user_id: UUID) -> "Participant":
        return cls(ref=user_id, kind=ParticipantKind.INTERNAL)

    @classmethod
    def guest(cls, guest_id: UUID) -> "Participant":
        return cls(ref=guest_id, kind=ParticipantKind.GUEST)


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case an email, rejecting syntactically invalid ones."""
    normalized = (email or "").strip().lower()
    if not normalized:
        raise InvalidInputError("must not be empty", field="email")
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidInputError(str(e), field="email")
    return normalized


class IdentityResolver:
    """Maps a session principal or a guest email to a participant."""

    def __init__(self, clock=None):
        self.clock = clock or system_clock

    def resolve_internal(
        self,
        principal: Optional[Union[User, InternalIdentity]],
        required: bool = True,
    ) -> Optional[InternalIdentity]:
        """
        Map the authenticated principal to an internal identity.

        Raises:
            UnauthenticatedError: No principal and ``required`` is set
        """
        if principal is None:
            if required:
                raise UnauthenticatedError()
            return None

        if isinstance(principal, InternalIdentity):
            return principal

        if not principal.is_active:
            raise UnauthenticatedError("Account is disabled")

        return InternalIdentity(user_id=principal.id, is_admin=principal.is_admin())

    async def get_guest(self, db: AsyncSession, email: str) -> Optional[GuestIdentity]:
        result = await db.execute(
            select(GuestIdentity).where(GuestIdentity.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get_guest_by_id(self, db: AsyncSession, guest_id: UUID) -> Optional[GuestIdentity]:
        result = await db.execute(select(GuestIdentity).where(GuestIdentity.id == guest_id))
        return result.scalar_one_or_none()

    async def resolve_guest(
        self,
        db: AsyncSession,
        email: str,
        name: Optional[str] = None,
    ) -> GuestIdentity:
        """
        Find or create the guest identity for an email.

        Emails are compared case-insensitively. When two requests race to
        create the same guest, the loser re-reads the winner's row, so both
        end up with one identity.
        """
        email = normalize_email(email)

        existing = await self.get_guest(db, email)
        if existing is not None:
            return existing

        guest = GuestIdentity(
            email=email,
            name=(name or "").strip() or None,
            created_at=self.clock.now(),
        )
        try:
            async with db.begin_nested():
                db.add(guest)
        except IntegrityError:
            logger.info(f"Guest {email} created concurrently; reusing existing identity")
            existing = await self.get_guest(db, email)
            if existing is None:
                raise
            return existing

        await db.commit()
        logger.info(f"Created guest identity {guest.id} for {email}")
        return guest
