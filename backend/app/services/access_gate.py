"""
Access gate: validates share tokens and issues capabilities for guests.
"""

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.core.config import settings
from app.models.art import Art
from app.models.shared_link import SharedLink, SubjectType
from app.utils.exceptions import (
    ExpiredLinkError,
    ForbiddenError,
    InvalidInputError,
    InvalidTokenError,
    NotFoundError,
    ScopeMismatchError,
)
from app.utils.formatters import ensure_utc


class Action(str, enum.Enum):
    VIEW = "VIEW"
    COMMENT = "COMMENT"
    DECIDE = "DECIDE"
    DOWNLOAD = "DOWNLOAD"


@dataclass(frozen=True)
class Capability:
    """What one share link allows, as of the request that produced it."""
    link_id: UUID
    subject_type: SubjectType
    subject_id: UUID
    read_only: bool
    can_comment: bool
    can_download: bool
    expires_at: Optional[datetime] = None

    @property
    def can_write(self) -> bool:
        return not self.read_only and self.can_comment

    def permits(self, action: Action) -> bool:
        if action == Action.VIEW:
            return True
        if action == Action.DOWNLOAD:
            return self.can_download
        return self.can_write

    def require(self, action: Action) -> "Capability":
        if not self.permits(action):
            raise ForbiddenError(f"This link does not allow {action.value.lower()}")
        return self

    @classmethod
    def from_link(cls, link: SharedLink) -> "Capability":
        return cls(
            link_id=link.id,
            subject_type=link.subject_type,
            subject_id=link.subject_id,
            read_only=bool(link.read_only),
            can_comment=bool(link.can_comment),
            can_download=bool(link.can_download),
            expires_at=ensure_utc(link.expires_at),
        )


class AccessGate:
    """Looks up share links and turns them into capabilities.

    Nothing is cached: every call re-reads the link and re-checks expiry
    against the injected clock.
    """

    def __init__(self, clock=None):
        self.clock = clock or system_clock

    async def resolve(self, db: AsyncSession, token: str) -> Capability:
        """Validate a token on its own, returning the capability of its link."""
        if not token:
            raise InvalidTokenError()

        result = await db.execute(select(SharedLink).where(SharedLink.token == token))
        link = result.scalar_one_or_none()
        if link is None:
            logger.debug("Share token lookup failed")
            raise InvalidTokenError()

        expires_at = ensure_utc(link.expires_at)
        if expires_at is not None and self.clock.now() >= expires_at:
            logger.debug(f"Share link {link.id} expired at {expires_at.isoformat()}")
            raise ExpiredLinkError()

        return Capability.from_link(link)

    async def authorize(
        self,
        db: AsyncSession,
        token: str,
        subject_id: UUID,
        action: Action = Action.VIEW,
    ) -> Capability:
        """
        Validate a token for one art and one action.

        Raises:
            InvalidTokenError: No link has this token
            ExpiredLinkError: The link expired before now
            ScopeMismatchError: The link is for another subject
            ForbiddenError: The link's flags do not allow the action
        """
        capability = await self.resolve(db, token)

        if capability.subject_type != SubjectType.ART or capability.subject_id != subject_id:
            logger.debug(f"Share link {capability.link_id} used outside its scope")
            raise ScopeMismatchError()

        return capability.require(action)

    async def create_link(
        self,
        db: AsyncSession,
        art_id: UUID,
        read_only: bool = False,
        can_comment: bool = True,
        can_download: bool = False,
        expires_at: Optional[datetime] = None,
        expires_in: Optional[timedelta] = None,
        created_by: Optional[UUID] = None,
    ) -> SharedLink:
        """Issue a new share link for an art."""
        art = await db.execute(select(Art.id).where(Art.id == art_id))
        if art.scalar_one_or_none() is None:
            raise NotFoundError("Art", art_id)

        now = self.clock.now()
        if expires_in is not None:
            expires_at = now + expires_in
        expires_at = ensure_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise InvalidInputError("must be in the future", field="expires_at")

        link = SharedLink(
            token=secrets.token_urlsafe(settings.SHARE_TOKEN_BYTES),
            subject_type=SubjectType.ART,
            subject_id=art_id,
            read_only=read_only,
            can_comment=can_comment and not read_only,
            can_download=can_download,
            expires_at=expires_at,
            created_by=created_by,
            created_at=now,
        )
        db.add(link)
        await db.commit()

        logger.info(f"Created share link {link.id} for art {art_id}")
        return link

    async def list_links(self, db: AsyncSession, art_id: UUID) -> List[SharedLink]:
        result = await db.execute(
            select(SharedLink)
            .where(SharedLink.subject_type == SubjectType.ART, SharedLink.subject_id == art_id)
            .order_by(SharedLink.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_link(self, db: AsyncSession, link_id: UUID) -> SharedLink:
        result = await db.execute(select(SharedLink).where(SharedLink.id == link_id))
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundError("SharedLink", link_id)
        return link

    async def revoke(self, db: AsyncSession, link_id: UUID) -> None:
        """Revoke a link by deleting it."""
        result = await db.execute(delete(SharedLink).where(SharedLink.id == link_id))
        if result.rowcount == 0:
            raise NotFoundError("SharedLink", link_id)
        await db.commit()
        logger.info(f"Revoked share link {link_id}")
