"""
Tests for the ingestion pipeline: previews, blob layout and compensation on failure.
"""

import asyncio
import io
from uuid import uuid4

import pytest
from PIL import Image
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models.art import Art, FileKind
from app.services.ingestion_service import BlobCompensation, IngestionPipeline
from app.services.media_service import IncomingFile, detect_type, make_preview, prepare_source
from app.services.version_ledger import VersionLedger
from app.utils.exceptions import InvalidInputError, NotFoundError, StorageError

from factories import create_test_art, make_png, pdf_upload, png_upload
from fakes import InMemoryBlobStore


class FailingInsertLedger(VersionLedger):
    """Ledger whose insert fails after the blobs are already stored."""

    async def create_version(self, db, art_id, source, preview=None, **kwargs):
        raise OperationalError("INSERT INTO art_versions", {}, Exception("disk I/O error"))


class StaleReadLedger(VersionLedger):
    def __init__(self, stale_reads: int, **kwargs):
        super().__init__(**kwargs)
        self.stale_reads = stale_reads

    async def current_max(self, db, art_id):
        actual = await super().current_max(db, art_id)
        if self.stale_reads > 0 and actual > 0:
            self.stale_reads -= 1
            return actual - 1
        return actual


class LastWriterWinsStore(InMemoryBlobStore):
    """Object store without an exclusive create: every put overwrites."""

    async def put(self, path, data, content_type, overwrite=False):
        return await super().put(path, data, content_type, overwrite=True)


async def current_number(db, art_id) -> int:
    result = await db.execute(select(Art.current_version_number).where(Art.id == art_id))
    return result.scalar()


@pytest.mark.asyncio
async def test_image_upload_stores_source_and_preview(db_session, blob_store, project, test_user):
    """Images get a source blob and a preview blob under the version prefix."""
    art, version = await create_test_art(db_session, blob_store, project, test_user)

    assert blob_store.paths_under(f"{art.id}/v1/") == [
        f"{art.id}/v1/preview.jpg",
        f"{art.id}/v1/source.png",
    ]
    assert version.source_file_ref == f"{art.id}/v1/source.png"
    assert version.preview_file_ref == f"{art.id}/v1/preview.jpg"

    source = next(f for f in version.files if f.kind == FileKind.SOURCE)
    assert (source.width, source.height) == (64, 48)
    assert source.mime == "image/png"


@pytest.mark.asyncio
async def test_non_image_has_no_preview(db_session, blob_store, project, test_user):
    """Non-image sources are stored without a preview."""
    art, version = await create_test_art(db_session, blob_store, project, test_user, upload=pdf_upload())

    assert version.preview_file_ref is None
    assert [f.kind for f in version.files] == [FileKind.SOURCE]
    assert blob_store.paths_under(f"{art.id}/") == [f"{art.id}/v1/source.pdf"]


@pytest.mark.asyncio
async def test_db_failure_after_uploads_leaves_no_blobs(db_session, blob_store, project, test_user):
    """An insert failure after both uploads removes both blobs and re-raises the original error."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    art_id = art.id

    pipeline = IngestionPipeline(blob_store, ledger=FailingInsertLedger())
    with pytest.raises(OperationalError):
        await pipeline.ingest_version(db_session, art_id, png_upload())

    assert f"{art_id}/v2/source.png" in blob_store.put_calls
    assert f"{art_id}/v2/preview.jpg" in blob_store.put_calls
    assert blob_store.paths_under(f"{art_id}/v2/") == []
    assert blob_store.removed == [f"{art_id}/v2/preview.jpg", f"{art_id}/v2/source.png"]
    assert await current_number(db_session, art_id) == 1


@pytest.mark.asyncio
async def test_storage_failure_compensates_and_reports(db_session, blob_store, project, test_user):
    """A failed preview upload removes the source and marks cleanup complete."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    art_id = art.id
    blob_store.fail_on_put.add("v2/preview.jpg")

    with pytest.raises(StorageError) as exc_info:
        await IngestionPipeline(blob_store).ingest_version(db_session, art_id, png_upload())

    assert exc_info.value.cleanup_complete is True
    assert exc_info.value.orphaned_paths == []
    assert blob_store.paths_under(f"{art_id}/v2/") == []
    assert await current_number(db_session, art_id) == 1


@pytest.mark.asyncio
async def test_failed_compensation_reports_orphans(db_session, blob_store, project, test_user):
    """Secondary delete failures are reported on the error, never raised."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    art_id = art.id
    blob_store.fail_on_put.add("v2/preview.jpg")
    blob_store.fail_on_remove.add("v2/source.png")

    with pytest.raises(StorageError) as exc_info:
        await IngestionPipeline(blob_store).ingest_version(db_session, art_id, png_upload())

    assert exc_info.value.cleanup_complete is False
    assert exc_info.value.orphaned_paths == [f"{art_id}/v2/source.png"]


@pytest.mark.asyncio
async def test_cancellation_triggers_compensation(db_session, blob_store, project, test_user):
    """A cancelled upload cleans up exactly like a failed one."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    art_id = art.id
    blob_store.cancel_on_put.add("v2/preview.jpg")

    with pytest.raises(asyncio.CancelledError):
        await IngestionPipeline(blob_store).ingest_version(db_session, art_id, png_upload())

    assert blob_store.paths_under(f"{art_id}/v2/") == []
    assert await current_number(db_session, art_id) == 1


@pytest.mark.asyncio
async def test_create_art_failure_leaves_nothing(db_session, blob_store, project, test_user):
    """A failed first version leaves neither blobs nor an art row."""
    blob_store.fail_on_put.add("preview.jpg")

    with pytest.raises(StorageError):
        await create_test_art(db_session, blob_store, project, test_user)

    assert blob_store.blobs == {}
    result = await db_session.execute(select(Art))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_taken_blob_path_retries_next_number(db_session, blob_store, project, test_user):
    """When a concurrent upload already holds the version's paths, the loser moves on without touching them."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    art_id = art.id
    await IngestionPipeline(blob_store).ingest_version(db_session, art_id, png_upload())
    winner_blob = blob_store.blobs[f"{art_id}/v2/source.png"]

    pipeline = IngestionPipeline(blob_store, ledger=StaleReadLedger(stale_reads=1))
    version = await pipeline.ingest_version(db_session, art_id, png_upload(width=20, height=20))

    assert version.version_number == 3
    assert blob_store.blobs[f"{art_id}/v2/source.png"] == winner_blob
    assert f"{art_id}/v3/source.png" in blob_store.blobs


@pytest.mark.asyncio
async def test_lost_race_keeps_blobs_of_committed_version(db_session, project, test_user):
    """A loser that overwrote the winner's paths must not delete them while compensating."""
    store = LastWriterWinsStore()
    art, _ = await create_test_art(db_session, store, project, test_user)
    art_id = art.id
    winner = await IngestionPipeline(store).ingest_version(db_session, art_id, png_upload())
    assert winner.version_number == 2

    pipeline = IngestionPipeline(store, ledger=StaleReadLedger(stale_reads=1))
    version = await pipeline.ingest_version(db_session, art_id, png_upload(width=20, height=20))

    assert version.version_number == 3
    assert f"{art_id}/v2/source.png" in store.blobs
    assert f"{art_id}/v2/preview.jpg" in store.blobs
    assert f"{art_id}/v2/source.png" not in store.removed
    assert f"{art_id}/v3/source.png" in store.blobs


@pytest.mark.asyncio
async def test_rejects_empty_and_unknown(db_session, blob_store, project, test_user):
    """Empty uploads and unknown arts fail before anything is stored."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    before = dict(blob_store.blobs)
    pipeline = IngestionPipeline(blob_store)

    with pytest.raises(InvalidInputError):
        await pipeline.ingest_version(db_session, art.id, IncomingFile("empty.png", b"", "image/png"))

    with pytest.raises(NotFoundError):
        await pipeline.ingest_version(db_session, uuid4(), png_upload())

    assert blob_store.blobs == before


@pytest.mark.asyncio
async def test_attachments_go_to_current_version(db_session, blob_store, project, test_user):
    """Attachments land under the current version and are recorded as ATTACHMENT files."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    rows = await IngestionPipeline(blob_store).add_attachments(
        db_session, art.id, [pdf_upload("notes.pdf"), pdf_upload("specs.pdf")]
    )

    assert len(rows) == 2
    assert all(row.kind == FileKind.ATTACHMENT for row in rows)
    assert all(row.path.startswith(f"{art.id}/v1/attachments/") and row.path.endswith(".pdf") for row in rows)
    assert all(row.path in blob_store.blobs for row in rows)


@pytest.mark.asyncio
async def test_attachment_failure_removes_uploaded_attachments(db_session, blob_store, project, test_user):
    """If the second attachment fails, the first is removed again."""
    art, _ = await create_test_art(db_session, blob_store, project, test_user)
    blob_store.fail_on_put.add(".zip")

    with pytest.raises(StorageError):
        await IngestionPipeline(blob_store).add_attachments(
            db_session,
            art.id,
            [pdf_upload("notes.pdf"), IncomingFile("bundle.zip", b"PK\x03\x04", "application/zip")],
        )

    assert blob_store.paths_under(f"{art.id}/v1/attachments/") == []


@pytest.mark.asyncio
async def test_compensation_removes_newest_first(blob_store):
    """Rollback walks uploads in reverse order."""
    saga = BlobCompensation(blob_store)
    await saga.put("a/1", b"1", "text/plain")
    await saga.put("a/2", b"2", "text/plain")

    orphaned = await saga.rollback()

    assert orphaned == []
    assert blob_store.removed == ["a/2", "a/1"]


def test_preview_is_bounded_to_max_width():
    """Wide images are scaled down to 1280 px, keeping aspect ratio."""
    preview = make_preview(make_png(3000, 1500))

    assert (preview.width, preview.height) == (1280, 640)
    with Image.open(io.BytesIO(preview.data)) as img:
        assert img.format == "JPEG"
        assert img.size == (1280, 640)


def test_preview_never_enlarges():
    """Small images keep their size."""
    preview = make_preview(make_png(200, 100))

    assert (preview.width, preview.height) == (200, 100)


def test_preview_flattens_transparency():
    """Images with alpha become RGB JPEGs."""
    preview = make_preview(make_png(40, 40, mode="RGBA"))

    with Image.open(io.BytesIO(preview.data)) as img:
        assert img.mode == "RGB"


def test_detect_type_prefers_declared_type():
    assert detect_type("logo.PNG", None) == ("image/png", "png")
    assert detect_type("logo.png", "image/png; charset=binary") == ("image/png", "png")
    assert detect_type("photo.jpg", "application/octet-stream")[0] == "image/jpeg"


def test_undecodable_image_gets_no_preview():
    """Bytes declared as an image that do not decode are stored without a preview."""
    prepared = prepare_source(IncomingFile("broken.png", b"not really a png", "image/png"))

    assert prepared.preview is None
    assert not prepared.is_image
    assert prepared.ext == "png"
