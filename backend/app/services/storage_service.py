"""
Blob storage for art sources, previews, attachments and audio feedback using MinIO.
"""

import abc
import asyncio
import uuid
from datetime import timedelta
from io import BytesIO
from typing import Iterable, List, Optional
from uuid import UUID

from minio import Minio
from minio.error import S3Error
from loguru import logger

from app.core.config import settings
from app.utils.exceptions import StorageError, BlobExistsError


def source_path(art_id: UUID, version_number: int, ext: str) -> str:
    return f"{art_id}/v{version_number}/source.{ext}"


def preview_path(art_id: UUID, version_number: int) -> str:
    return f"{art_id}/v{version_number}/preview.jpg"


def attachment_path(art_id: UUID, version_number: int, ext: str) -> str:
    return f"{art_id}/v{version_number}/attachments/{uuid.uuid4()}.{ext}"


def feedback_audio_prefix(art_id: UUID) -> str:
    return f"{art_id}/feedback/"


def feedback_audio_path(art_id: UUID, ext: str) -> str:
    return f"{feedback_audio_prefix(art_id)}{uuid.uuid4()}.{ext}"


class BlobStore(abc.ABC):
    """Path-addressed blob storage.

    It cannot take part in database transactions, so writers upload first,
    insert second, and remove what they uploaded if the insert fails.
    """

    @abc.abstractmethod
    async def put(self, path: str, data: bytes, content_type: str, overwrite: bool = False) -> str:
        """Store ``data`` at ``path``. Raises ``BlobExistsError`` if occupied and not ``overwrite``."""

    @abc.abstractmethod
    async def remove(self, paths: Iterable[str]) -> List[str]:
        """Best-effort delete. Returns the paths that could not be removed."""

    @abc.abstractmethod
    async def exists(self, path: str) -> bool:
        """Check whether a blob is stored at ``path``."""

    @abc.abstractmethod
    async def signed_url(self, path: str, ttl_seconds: Optional[int] = None) -> str:
        """Time-limited download URL."""

    @abc.abstractmethod
    def public_url(self, path: str) -> str:
        """Unsigned URL, valid only where the bucket allows anonymous reads."""


class MinIOBlobStore(BlobStore):
    """Blob store backed by a MinIO (S3-compatible) bucket."""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[Minio] = None,
    ):
        self.bucket_name = bucket_name or settings.MINIO_BUCKET_NAME
        self.timeout_seconds = timeout_seconds or settings.STORAGE_TIMEOUT_SECONDS
        self.client: Optional[Minio] = client
        self._initialized = False

    def _get_client(self) -> Minio:
        """Get or create MinIO client."""
        if not self.client:
            self.client = Minio(
                settings.MINIO_ENDPOINT,
                access_key=settings.MINIO_ACCESS_KEY,
                secret_key=settings.MINIO_SECRET_KEY,
                secure=settings.MINIO_USE_SSL
            )
        return self.client

    async def _call(self, fn, *args, **kwargs):
        """Run a blocking client call off the event loop with a bounded timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise StorageError(
                f"{getattr(fn, '__name__', 'call')} timed out after {self.timeout_seconds}s"
            )

    async def initialize(self):
        """Ensure the bucket exists."""
        if self._initialized:
            return

        client = self._get_client()
        try:
            if not await self._call(client.bucket_exists, self.bucket_name):
                await self._call(client.make_bucket, self.bucket_name)
                logger.info(f"Created MinIO bucket: {self.bucket_name}")
            else:
                logger.info(f"MinIO bucket already exists: {self.bucket_name}")
        except S3Error as e:
            logger.error(f"MinIO S3Error during initialization: {e}")
            raise StorageError("bucket initialization failed", detail=str(e))

        self._initialized = True

    @staticmethod
    def _sanitize_object_path(object_path: str) -> str:
        """
        Normalize an object path: drop empty, '.' and '..' segments and any
        leading slash.
        """
        if not object_path:
            raise ValueError("Object path cannot be empty")

        segments = [s for s in object_path.split('/') if s and s not in ('.', '..')]
        if not segments:
            raise ValueError("Object path must contain at least one valid segment")

        return '/'.join(segments)

    async def exists(self, path: str) -> bool:
        await self.initialize()
        client = self._get_client()
        try:
            await self._call(client.stat_object, self.bucket_name, self._sanitize_object_path(path))
            return True
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                return False
            raise StorageError(f"stat failed for {path}", detail=str(e))

    async def put(self, path: str, data: bytes, content_type: str, overwrite: bool = False) -> str:
        await self.initialize()
        client = self._get_client()
        object_path = self._sanitize_object_path(path)

        # Check-then-write; two racing puts can both pass this check
        if not overwrite and await self.exists(object_path):
            raise BlobExistsError(object_path)

        try:
            await self._call(
                client.put_object,
                bucket_name=self.bucket_name,
                object_name=object_path,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type or "application/octet-stream",
            )
        except S3Error as e:
            logger.error(f"MinIO S3Error during upload of {object_path}: {e}")
            raise StorageError(f"upload failed for {object_path}", detail=str(e))

        logger.info(f"Uploaded blob: {object_path} ({len(data)} bytes)")
        return object_path

    async def remove(self, paths: Iterable[str]) -> List[str]:
        failed: List[str] = []
        try:
            await self.initialize()
        except StorageError as e:
            logger.warning(f"Blob removal skipped, storage unavailable: {e}")
            return list(paths)

        client = self._get_client()
        for path in paths:
            try:
                await self._call(client.remove_object, self.bucket_name, self._sanitize_object_path(path))
                logger.info(f"Removed blob: {path}")
            except S3Error as e:
                if e.code in ("NoSuchKey", "NoSuchObject"):
                    logger.warning(f"Blob already absent: {path}")
                    continue
                logger.warning(f"Failed to remove blob {path}: {e}")
                failed.append(path)
            except StorageError as e:
                logger.warning(f"Failed to remove blob {path}: {e}")
                failed.append(path)
        return failed

    async def signed_url(self, path: str, ttl_seconds: Optional[int] = None) -> str:
        await self.initialize()
        client = self._get_client()
        expiry_seconds = ttl_seconds or settings.SIGNED_URL_EXPIRY_SECONDS
        try:
            return await self._call(
                client.presigned_get_object,
                bucket_name=self.bucket_name,
                object_name=self._sanitize_object_path(path),
                expires=timedelta(seconds=expiry_seconds),
            )
        except S3Error as e:
            logger.error(f"MinIO S3Error generating presigned URL for '{path}': {e}")
            raise StorageError(f"could not sign {path}", detail=str(e))

    def public_url(self, path: str) -> str:
        object_path = self._sanitize_object_path(path)
        if settings.MINIO_PUBLIC_BASE_URL:
            return f"{settings.MINIO_PUBLIC_BASE_URL.rstrip('/')}/{object_path}"
        scheme = "https" if settings.MINIO_USE_SSL else "http"
        return f"{scheme}://{settings.MINIO_ENDPOINT}/{self.bucket_name}/{object_path}"


# Global storage instance
storage_service = MinIOBlobStore()


def get_blob_store() -> BlobStore:
    """Dependency for the configured blob store."""
    return storage_service
