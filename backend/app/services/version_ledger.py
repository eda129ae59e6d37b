"""
Version ledger: append-only history of art versions and their files.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.core.config import settings
from app.models.art import Art, ArtVersion, ArtFile, FileKind, VersionStatus
from app.utils.exceptions import ConflictError, NotFoundError


@dataclass
class FileRef:
    """A blob that has already been uploaded and is waiting for its ledger row."""
    path: str
    mime: str
    size_bytes: int
    width: Optional[int] = None
    height: Optional[int] = None


class VersionLedger:
    """Owns version numbering and the ``Art`` fields denormalized from it.

    Version numbers are allocated optimistically: read the current maximum,
    insert ``max + 1`` and let the ``(art_id, version_number)`` unique
    constraint pick the winner. Losers re-read and retry a bounded number of
    times.
    """

    def __init__(self, clock=None, max_attempts: Optional[int] = None):
        self.clock = clock or system_clock
        self.max_attempts = max_attempts or settings.VERSION_CREATE_MAX_ATTEMPTS

    async def get_art(self, db: AsyncSession, art_id: UUID) -> Art:
        result = await db.execute(select(Art).where(Art.id == art_id))
        art = result.scalar_one_or_none()
        if art is None:
            raise NotFoundError("Art", art_id)
        return art

    async def current_max(self, db: AsyncSession, art_id: UUID) -> int:
        """Highest committed version number for the art, 0 when it has none."""
        result = await db.execute(
            select(func.max(ArtVersion.version_number)).where(ArtVersion.art_id == art_id)
        )
        return result.scalar() or 0

    async def create_version(
        self,
        db: AsyncSession,
        art_id: UUID,
        source: FileRef,
        preview: Optional[FileRef] = None,
        status: VersionStatus = VersionStatus.DRAFT,
        created_by: Optional[UUID] = None,
        expected_number: Optional[int] = None,
        commit: bool = True,
    ) -> ArtVersion:
        """
        Append a version and move the art's current pointer to it.

        Args:
            db: Database session
            art_id: Art to extend
            source: Uploaded source blob
            preview: Uploaded preview blob, for images only
            status: Initial status, DRAFT or PENDING_REVIEW
            created_by: Uploading user
            expected_number: Insert exactly this number, without retrying.
                Used when blob paths already embed the number.
            commit: Commit the session on success

        Returns:
            The new ArtVersion with its files loaded

        Raises:
            NotFoundError: Art does not exist
            ConflictError: Lost the race for the number on every attempt
        """
        if status not in (VersionStatus.DRAFT, VersionStatus.PENDING_REVIEW):
            raise ValueError(f"New versions start in DRAFT or PENDING_REVIEW, not {status}")

        await self.get_art(db, art_id)

        attempts = 1 if expected_number is not None else self.max_attempts
        for attempt in range(1, attempts + 1):
            number = expected_number or (await self.current_max(db, art_id)) + 1
            version = self._build_version(art_id, number, source, preview, status, created_by)
            try:
                async with db.begin_nested():
                    db.add(version)
            except IntegrityError:
                logger.warning(
                    f"Version number conflict for art {art_id} at v{number} "
                    f"(attempt {attempt}/{attempts})"
                )
                continue

            await self._advance_art(db, art_id, number, status)
            if commit:
                await db.commit()

            logger.info(f"Created version v{number} for art {art_id} (attempt {attempt})")
            return version

        raise ConflictError(
            f"Could not allocate a version number for art {art_id} after {attempts} attempt(s)"
        )

    def _build_version(
        self,
        art_id: UUID,
        number: int,
        source: FileRef,
        preview: Optional[FileRef],
        status: VersionStatus,
        created_by: Optional[UUID],
    ) -> ArtVersion:
        files = [self._file_row(art_id, number, FileKind.SOURCE, source)]
        if preview is not None:
            files.append(self._file_row(art_id, number, FileKind.PREVIEW, preview))

        return ArtVersion(
            art_id=art_id,
            version_number=number,
            status=status,
            source_file_ref=source.path,
            preview_file_ref=preview.path if preview else None,
            created_by=created_by,
            created_at=self.clock.now(),
            files=files,
        )

    def _file_row(self, art_id: UUID, number: int, kind: FileKind, ref: FileRef) -> ArtFile:
        return ArtFile(
            art_id=art_id,
            version_number=number,
            kind=kind,
            path=ref.path,
            mime=ref.mime,
            size_bytes=ref.size_bytes,
            width=ref.width,
            height=ref.height,
            created_at=self.clock.now(),
        )

    async def _advance_art(self, db: AsyncSession, art_id: UUID, number: int, status: VersionStatus) -> None:
        # Guarded so a slower writer with a lower number never moves the pointer back
        await db.execute(
            update(Art)
            .where(Art.id == art_id, Art.current_version_number < number)
            .values(
                current_version_number=number,
                current_status=status,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session="fetch")
        )

    async def get_version(self, db: AsyncSession, art_id: UUID, number: Optional[int] = None) -> ArtVersion:
        """Return version ``number`` of the art, or its current version when omitted."""
        art = await self.get_art(db, art_id)
        if number is None:
            number = art.current_version_number
            if not number:
                raise NotFoundError("ArtVersion", f"{art_id} (no versions)")

        result = await db.execute(
            select(ArtVersion).where(
                ArtVersion.art_id == art_id,
                ArtVersion.version_number == number,
            )
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundError("ArtVersion", f"{art_id} v{number}")
        return version

    async def get_version_by_id(self, db: AsyncSession, version_id: UUID) -> ArtVersion:
        result = await db.execute(select(ArtVersion).where(ArtVersion.id == version_id))
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundError("ArtVersion", version_id)
        return version

    async def list_versions(self, db: AsyncSession, art_id: UUID) -> List[ArtVersion]:
        """All versions of the art, oldest first, with files loaded."""
        await self.get_art(db, art_id)
        result = await db.execute(
            select(ArtVersion)
            .where(ArtVersion.art_id == art_id)
            .order_by(ArtVersion.version_number.asc())
        )
        return list(result.scalars().all())

    async def add_files(
        self,
        db: AsyncSession,
        version: ArtVersion,
        refs: List[FileRef],
        kind: FileKind = FileKind.ATTACHMENT,
        commit: bool = True,
    ) -> List[ArtFile]:
        """Attach extra file rows to an existing version."""
        rows = []
        for ref in refs:
            row = self._file_row(version.art_id, version.version_number, kind, ref)
            row.art_version_id = version.id
            rows.append(row)
        db.add_all(rows)
        if commit:
            await db.commit()
        else:
            await db.flush()
        return rows

    async def record_status(self, db: AsyncSession, version: ArtVersion, status: VersionStatus) -> None:
        """
        Set a version's status and mirror it onto the art when the version is
        the current one. Does not commit.
        """
        version.status = status
        await db.execute(
            update(Art)
            .where(Art.id == version.art_id, Art.current_version_number == version.version_number)
            .values(current_status=status, updated_at=self.clock.now())
            .execution_options(synchronize_session="fetch")
        )
        await db.flush()
