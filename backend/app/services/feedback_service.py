"""
Feedback thread: comments anchored to a version, optionally at a point on its preview.
"""

import asyncio
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.core.config import settings
from app.models.art import ArtVersion
from app.models.feedback import FeedbackItem, FeedbackKind, FeedbackReply, FeedbackStatus
from app.models.guest import ParticipantKind
from app.services.access_gate import AccessGate, Action, Capability
from app.services.identity_service import IdentityResolver, Participant
from app.services.ingestion_service import BlobCompensation
from app.services.media_service import IncomingFile, detect_type
from app.services.storage_service import BlobStore, feedback_audio_path, feedback_audio_prefix
from app.services.version_ledger import VersionLedger
from app.utils.exceptions import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    ScopeMismatchError,
    StorageError,
)


@dataclass
class Position:
    """Where a comment points: relative (0-1) and absolute pixel coordinates."""
    rel_x: Optional[float] = None
    rel_y: Optional[float] = None
    abs_x: Optional[float] = None
    abs_y: Optional[float] = None


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def normalize_position(position: Optional[Position]) -> Optional[Position]:
    """
    Validate a position anchor.

    Relative and absolute coordinates travel together: all four or none.
    Relative values outside [0, 1] are clamped; absolute values are kept as
    observed by the client.

    Raises:
        InvalidInputError: Partial or non-finite coordinates
    """
    if position is None:
        return None

    values = (position.rel_x, position.rel_y, position.abs_x, position.abs_y)
    if all(v is None for v in values):
        return None
    if any(v is None for v in values):
        raise InvalidInputError(
            "relative and absolute coordinates must be supplied together", field="position"
        )

    try:
        rel_x, rel_y, abs_x, abs_y = (float(v) for v in values)
    except (TypeError, ValueError):
        raise InvalidInputError("coordinates must be numbers", field="position")
    if not all(math.isfinite(v) for v in (rel_x, rel_y, abs_x, abs_y)):
        raise InvalidInputError("coordinates must be finite", field="position")

    return Position(rel_x=_clamp_unit(rel_x), rel_y=_clamp_unit(rel_y), abs_x=abs_x, abs_y=abs_y)


class FeedbackThread:
    """Stores and lists feedback items and their replies."""

    def __init__(
        self,
        store: Optional[BlobStore] = None,
        gate: Optional[AccessGate] = None,
        identities: Optional[IdentityResolver] = None,
        ledger: Optional[VersionLedger] = None,
        clock=None,
    ):
        self.clock = clock or system_clock
        self.store = store
        self.gate = gate or AccessGate(clock=self.clock)
        self.identities = identities or IdentityResolver(clock=self.clock)
        self.ledger = ledger or VersionLedger(clock=self.clock)

    def _check_write(self, art_id: UUID, author: Participant, capability: Optional[Capability]) -> None:
        if capability is not None:
            if capability.subject_id != art_id:
                raise ScopeMismatchError()
            capability.require(Action.COMMENT)
        elif author.kind == ParticipantKind.GUEST:
            raise ForbiddenError("Guests may only comment through a share link")

    def _check_content(
        self, art_id: UUID, kind: FeedbackKind, content: Optional[str], audio_ref: Optional[str]
    ) -> Optional[str]:
        content = content.strip() if content else None
        if content and len(content) > settings.FEEDBACK_MAX_LENGTH:
            raise InvalidInputError(
                f"must be at most {settings.FEEDBACK_MAX_LENGTH} characters", field="content"
            )
        if kind == FeedbackKind.TEXT and not content:
            raise InvalidInputError("text feedback needs content", field="content")
        if kind == FeedbackKind.AUDIO and not audio_ref:
            raise InvalidInputError("audio feedback needs an audio reference", field="audio_ref")
        if kind == FeedbackKind.AUDIO and (
            not audio_ref.startswith(feedback_audio_prefix(art_id)) or ".." in audio_ref
        ):
            raise InvalidInputError("must be an audio note uploaded for this art", field="audio_ref")
        return content

    async def post(
        self,
        db: AsyncSession,
        version_id: UUID,
        author: Participant,
        kind: FeedbackKind,
        content: Optional[str] = None,
        audio_ref: Optional[str] = None,
        position: Optional[Position] = None,
        capability: Optional[Capability] = None,
    ) -> FeedbackItem:
        """
        Post a feedback item on a version.

        Args:
            db: Database session
            version_id: Version being commented on
            author: Internal user or guest
            kind: TEXT or AUDIO
            content: Comment text, required for TEXT
            audio_ref: Stored audio path, required for AUDIO
            position: Optional anchor on the preview
            capability: Share-link capability; required for guests

        Returns:
            The committed FeedbackItem
        """
        version = await self.ledger.get_version_by_id(db, version_id)
        self._check_write(version.art_id, author, capability)
        content = self._check_content(version.art_id, kind, content, audio_ref)
        anchor = normalize_position(position)

        item = self._build_item(version, author, kind, content, audio_ref, anchor)
        db.add(item)
        await db.commit()

        logger.info(
            f"Feedback {item.id} ({kind.value}) posted on art {version.art_id} "
            f"v{version.version_number} by {author.kind.value.lower()} {author.ref}"
        )
        return item

    async def post_as_guest(
        self,
        db: AsyncSession,
        token: str,
        email: str,
        version_id: UUID,
        kind: FeedbackKind,
        content: Optional[str] = None,
        audio_ref: Optional[str] = None,
        position: Optional[Position] = None,
        name: Optional[str] = None,
    ) -> FeedbackItem:
        """Validate the share link, resolve the guest by email and post."""
        version = await self.ledger.get_version_by_id(db, version_id)
        capability = await self.gate.authorize(db, token, version.art_id, Action.COMMENT)
        guest = await self.identities.resolve_guest(db, email, name)
        return await self.post(
            db,
            version_id,
            Participant.guest(guest.id),
            kind,
            content=content,
            audio_ref=audio_ref,
            position=position,
            capability=capability,
        )

    async def post_audio(
        self,
        db: AsyncSession,
        version_id: UUID,
        author: Participant,
        upload: IncomingFile,
        content: Optional[str] = None,
        position: Optional[Position] = None,
        capability: Optional[Capability] = None,
    ) -> FeedbackItem:
        """Upload an audio note, then record it as AUDIO feedback."""
        if self.store is None:
            raise RuntimeError("FeedbackThread needs a blob store for audio uploads")
        if not upload.data:
            raise InvalidInputError("file is empty", field="file")
        if upload.size > settings.MAX_UPLOAD_BYTES:
            raise InvalidInputError(f"file exceeds {settings.MAX_UPLOAD_BYTES} bytes", field="file")

        mime, ext = detect_type(upload.filename, upload.content_type)
        if not mime.startswith("audio/"):
            raise InvalidInputError(f"expected an audio file, got {mime}", field="file")

        version = await self.ledger.get_version_by_id(db, version_id)
        self._check_write(version.art_id, author, capability)
        anchor = normalize_position(position)
        content = content.strip() if content else None

        saga = BlobCompensation(self.store)
        try:
            audio_ref = await saga.put(feedback_audio_path(version.art_id, ext), upload.data, mime)
            item = self._build_item(version, author, FeedbackKind.AUDIO, content, audio_ref, anchor)
            db.add(item)
            await db.commit()
        except (Exception, asyncio.CancelledError) as e:
            logger.warning(f"Audio feedback failed ({e.__class__.__name__}: {e}); compensating")
            try:
                await db.rollback()
            except Exception as rollback_error:
                logger.warning(f"Session rollback after failed audio feedback raised: {rollback_error}")
            orphaned = await saga.rollback()
            if isinstance(e, StorageError):
                e.cleanup_complete = not orphaned
                e.orphaned_paths = orphaned
            raise

        logger.info(f"Audio feedback {item.id} posted on art {version.art_id} v{version.version_number}")
        return item

    def _build_item(
        self,
        version: ArtVersion,
        author: Participant,
        kind: FeedbackKind,
        content: Optional[str],
        audio_ref: Optional[str],
        anchor: Optional[Position],
    ) -> FeedbackItem:
        return FeedbackItem(
            art_id=version.art_id,
            art_version_id=version.id,
            author_ref=author.ref,
            author_kind=author.kind,
            kind=kind,
            content=content,
            audio_ref=audio_ref,
            rel_x=anchor.rel_x if anchor else None,
            rel_y=anchor.rel_y if anchor else None,
            abs_x=anchor.abs_x if anchor else None,
            abs_y=anchor.abs_y if anchor else None,
            status=FeedbackStatus.OPEN,
            created_at=self.clock.now(),
        )

    async def get(self, db: AsyncSession, feedback_id: UUID) -> FeedbackItem:
        result = await db.execute(select(FeedbackItem).where(FeedbackItem.id == feedback_id))
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError("FeedbackItem", feedback_id)
        return item

    async def set_status(
        self,
        db: AsyncSession,
        feedback_id: UUID,
        status: FeedbackStatus,
        capability: Optional[Capability] = None,
    ) -> FeedbackItem:
        """Move an item to any status; triage has no transition rules."""
        item = await self.get(db, feedback_id)
        if capability is not None:
            if capability.subject_id != item.art_id:
                raise ScopeMismatchError()
            capability.require(Action.COMMENT)

        previous = item.status
        item.status = status
        await db.commit()

        logger.info(f"Feedback {feedback_id} status {previous.value} -> {status.value}")
        return item

    async def list_by_version(self, db: AsyncSession, version_id: UUID) -> List[FeedbackItem]:
        """Items on one version, oldest first."""
        await self.ledger.get_version_by_id(db, version_id)
        result = await db.execute(
            select(FeedbackItem)
            .where(FeedbackItem.art_version_id == version_id)
            .order_by(FeedbackItem.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_all_for_art(self, db: AsyncSession, art_id: UUID) -> Dict[int, List[FeedbackItem]]:
        """Items on every version of an art, keyed by version number in ascending order."""
        versions = await self.ledger.list_versions(db, art_id)
        grouped: Dict[int, List[FeedbackItem]] = OrderedDict(
            (version.version_number, []) for version in versions
        )
        numbers = {version.id: version.version_number for version in versions}

        result = await db.execute(
            select(FeedbackItem)
            .where(FeedbackItem.art_id == art_id)
            .order_by(FeedbackItem.created_at.asc())
        )
        for item in result.scalars().all():
            grouped[numbers[item.art_version_id]].append(item)
        return grouped

    async def add_reply(
        self,
        db: AsyncSession,
        feedback_id: UUID,
        author: Participant,
        content: str,
        status_after: Optional[FeedbackStatus] = None,
        capability: Optional[Capability] = None,
    ) -> FeedbackReply:
        """Reply under a feedback item, optionally moving the item's status too."""
        item = await self.get(db, feedback_id)
        self._check_write(item.art_id, author, capability)

        content = (content or "").strip()
        if not content:
            raise InvalidInputError("must not be empty", field="content")
        if len(content) > settings.FEEDBACK_MAX_LENGTH:
            raise InvalidInputError(
                f"must be at most {settings.FEEDBACK_MAX_LENGTH} characters", field="content"
            )

        reply = FeedbackReply(
            feedback_id=item.id,
            author_ref=author.ref,
            author_kind=author.kind,
            content=content,
            created_at=self.clock.now(),
        )
        db.add(reply)
        if status_after is not None:
            item.status = status_after
        await db.commit()

        logger.info(f"Reply {reply.id} added to feedback {feedback_id}")
        return reply

    async def list_replies(self, db: AsyncSession, feedback_id: UUID) -> List[FeedbackReply]:
        await self.get(db, feedback_id)
        result = await db.execute(
            select(FeedbackReply)
            .where(FeedbackReply.feedback_id == feedback_id)
            .order_by(FeedbackReply.created_at.asc())
        )
        return list(result.scalars().all())
