"""
Ingestion pipeline: upload a version's blobs, then record it in the ledger.

Blob storage and the database are not transactional together. Every attempt
uploads first and inserts last; if anything fails after the first upload, the
blobs from that attempt are removed again in reverse order. The ledger row is
the only evidence that a version exists.
"""

import asyncio
import uuid
from typing import Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.clock import system_clock
from app.core.config import settings
from app.models.art import Art, ArtFile, ArtVersion, FileKind, VersionStatus
from app.models.project import Project
from app.services.media_service import IncomingFile, PreparedSource, detect_type, prepare_source
from app.services.storage_service import BlobStore, attachment_path, preview_path, source_path
from app.services.version_ledger import FileRef, VersionLedger
from app.utils.exceptions import (
    BlobExistsError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    StorageError,
)


class BlobCompensation:
    """Tracks the blobs uploaded in one attempt so they can be undone."""

    def __init__(self, store: BlobStore):
        self.store = store
        self.uploaded: List[str] = []

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        stored = await self.store.put(path, data, content_type)
        self.uploaded.append(stored)
        return stored

    async def rollback(self, keep: Iterable[str] = ()) -> List[str]:
        """
        Remove uploaded blobs newest first. Failures are logged and reported,
        never raised.

        Args:
            keep: Paths that must survive, e.g. ones a committed version points to

        Returns:
            Paths that could not be removed
        """
        orphaned: List[str] = []
        if self.uploaded:
            logger.info(f"Compensating {len(self.uploaded)} uploaded blob(s)")

        keep = set(keep)
        for path in reversed(self.uploaded):
            if path in keep:
                logger.warning(f"Keeping {path}: referenced by a committed version")
                continue
            try:
                failed = await self.store.remove([path])
            except Exception as e:
                logger.warning(f"Compensating delete raised for {path}: {e}")
                failed = [path]
            if failed:
                logger.error(f"Orphaned blob left after failed ingestion: {path}")
            orphaned.extend(failed)

        self.uploaded = []
        return orphaned


class IngestionPipeline:
    """Orchestrates source upload, preview generation and ledger insertion."""

    def __init__(
        self,
        store: BlobStore,
        ledger: Optional[VersionLedger] = None,
        clock=None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.clock = clock or system_clock
        self.ledger = ledger or VersionLedger(clock=self.clock)
        self.max_attempts = max_attempts or settings.VERSION_CREATE_MAX_ATTEMPTS

    async def ingest_version(
        self,
        db: AsyncSession,
        art_id: UUID,
        upload: IncomingFile,
        created_by: Optional[UUID] = None,
        review_required: bool = True,
    ) -> ArtVersion:
        """
        Store a new version of an existing art.

        Args:
            db: Database session
            art_id: Art receiving the version
            upload: Source file
            created_by: Uploading user
            review_required: Start in DRAFT when True, PENDING_REVIEW otherwise

        Returns:
            The committed ArtVersion

        Raises:
            NotFoundError: Art does not exist
            InvalidInputError: Empty, oversized or undecodable upload
            StorageError: Blob I/O failed; uploaded blobs were compensated
            ConflictError: Version number kept being taken by concurrent uploads
        """
        self._check_upload(upload)
        await self.ledger.get_art(db, art_id)
        prepared = await self._prepare(upload)
        status = VersionStatus.DRAFT if review_required else VersionStatus.PENDING_REVIEW

        for attempt in range(1, self.max_attempts + 1):
            number = await self.ledger.current_max(db, art_id) + 1
            saga = BlobCompensation(self.store)
            try:
                source_ref, preview_ref = await self._upload_version_blobs(saga, art_id, number, prepared)
                return await self.ledger.create_version(
                    db,
                    art_id,
                    source_ref,
                    preview_ref,
                    status=status,
                    created_by=created_by,
                    expected_number=number,
                )
            except (BlobExistsError, ConflictError) as e:
                # The winner may have written the same paths
                await saga.rollback(keep=await self._committed_paths(db, saga.uploaded))
                logger.warning(
                    f"v{number} of art {art_id} taken by a concurrent upload "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                continue
            except (Exception, asyncio.CancelledError) as e:
                await self._abort(db, saga, e)
                raise

        raise ConflictError(
            f"Could not store a new version of art {art_id} after {self.max_attempts} attempt(s)"
        )

    async def create_art(
        self,
        db: AsyncSession,
        project_id: UUID,
        author_id: UUID,
        name: str,
        upload: IncomingFile,
        kind: Optional[str] = None,
        review_required: bool = True,
    ) -> Tuple[Art, ArtVersion]:
        """Create an art together with its first version."""
        self._check_upload(upload)
        if not name or not name.strip():
            raise InvalidInputError("must not be empty", field="name")

        project = await db.execute(select(Project.id).where(Project.id == project_id))
        if project.scalar_one_or_none() is None:
            raise NotFoundError("Project", project_id)

        prepared = await self._prepare(upload)
        status = VersionStatus.DRAFT if review_required else VersionStatus.PENDING_REVIEW
        art_id = uuid.uuid4()
        saga = BlobCompensation(self.store)

        try:
            source_ref, preview_ref = await self._upload_version_blobs(saga, art_id, 1, prepared)

            art = Art(
                id=art_id,
                name=name.strip(),
                kind=kind or prepared.mime,
                project_id=project_id,
                author_id=author_id,
                current_version_number=0,
                created_at=self.clock.now(),
                updated_at=self.clock.now(),
            )
            db.add(art)
            version = await self.ledger.create_version(
                db,
                art_id,
                source_ref,
                preview_ref,
                status=status,
                created_by=author_id,
                expected_number=1,
                commit=False,
            )
            await db.commit()
        except (Exception, asyncio.CancelledError) as e:
            await self._abort(db, saga, e)
            raise

        logger.info(f"Created art {art_id} '{art.name}' in project {project_id}")
        return art, version

    async def add_attachments(
        self,
        db: AsyncSession,
        art_id: UUID,
        uploads: List[IncomingFile],
    ) -> List[ArtFile]:
        """Attach files to the art's current version."""
        if not uploads:
            raise InvalidInputError("at least one file is required", field="files")
        for upload in uploads:
            self._check_upload(upload)

        version = await self.ledger.get_version(db, art_id)
        saga = BlobCompensation(self.store)
        try:
            refs = []
            for upload in uploads:
                mime, ext = detect_type(upload.filename, upload.content_type)
                path = attachment_path(art_id, version.version_number, ext)
                await saga.put(path, upload.data, mime)
                refs.append(FileRef(path=path, mime=mime, size_bytes=upload.size))

            rows = await self.ledger.add_files(db, version, refs, FileKind.ATTACHMENT)
        except (Exception, asyncio.CancelledError) as e:
            await self._abort(db, saga, e)
            raise

        logger.info(f"Attached {len(rows)} file(s) to art {art_id} v{version.version_number}")
        return rows

    async def _upload_version_blobs(
        self,
        saga: BlobCompensation,
        art_id: UUID,
        number: int,
        prepared: PreparedSource,
    ) -> Tuple[FileRef, Optional[FileRef]]:
        src_path = await saga.put(
            source_path(art_id, number, prepared.ext),
            prepared.file.data,
            prepared.mime,
        )
        source_ref = FileRef(
            path=src_path,
            mime=prepared.mime,
            size_bytes=prepared.file.size,
            width=prepared.width,
            height=prepared.height,
        )

        preview_ref = None
        if prepared.preview is not None:
            pv_path = await saga.put(
                preview_path(art_id, number),
                prepared.preview.data,
                prepared.preview.mime,
            )
            preview_ref = FileRef(
                path=pv_path,
                mime=prepared.preview.mime,
                size_bytes=len(prepared.preview.data),
                width=prepared.preview.width,
                height=prepared.preview.height,
            )

        return source_ref, preview_ref

    async def _committed_paths(self, db: AsyncSession, paths: List[str]) -> Set[str]:
        if not paths:
            return set()
        result = await db.execute(select(ArtFile.path).where(ArtFile.path.in_(paths)))
        return set(result.scalars().all())

    async def _prepare(self, upload: IncomingFile) -> PreparedSource:
        # Pillow work is CPU-bound; keep it off the event loop
        try:
            return await asyncio.to_thread(prepare_source, upload)
        except OSError as e:
            raise InvalidInputError(f"image could not be processed: {e}", field="file")

    def _check_upload(self, upload: IncomingFile) -> None:
        if not upload.data:
            raise InvalidInputError("file is empty", field="file")
        if upload.size > settings.MAX_UPLOAD_BYTES:
            raise InvalidInputError(
                f"file exceeds {settings.MAX_UPLOAD_BYTES} bytes", field="file"
            )

    async def _abort(self, db: AsyncSession, saga: BlobCompensation, error: BaseException) -> None:
        """Undo this attempt's uploads and pending rows; the original error is re-raised by the caller."""
        logger.warning(f"Ingestion failed ({error.__class__.__name__}: {error}); compensating")

        try:
            await db.rollback()
        except Exception as e:
            logger.warning(f"Session rollback after failed ingestion raised: {e}")

        orphaned = await saga.rollback()
        if isinstance(error, StorageError):
            error.cleanup_complete = not orphaned
            error.orphaned_paths = orphaned
