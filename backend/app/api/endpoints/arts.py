"""
Art, version and attachment endpoints.
"""

from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.rate_limit import limiter, UPLOAD_LIMIT
from app.models.user import User
from app.schemas.art import (
    ArtCreatedResponse,
    ArtFileResponse,
    ArtResponse,
    ArtVersionResponse,
)
from app.services.approval_service import ApprovalEngine
from app.services.auth_service import get_current_user
from app.services.ingestion_service import IngestionPipeline
from app.services.media_service import read_upload
from app.services.storage_service import BlobStore, get_blob_store
from app.services.version_ledger import VersionLedger

router = APIRouter()
ledger = VersionLedger()
approval_engine = ApprovalEngine(ledger=ledger)


def get_ingestion_pipeline(store: BlobStore = Depends(get_blob_store)) -> IngestionPipeline:
    return IngestionPipeline(store, ledger=ledger)


@router.post("", response_model=ArtCreatedResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_LIMIT)
async def create_art(
    request: Request,
    project_id: UUID = Form(...),
    name: str = Form(...),
    kind: Optional[str] = Form(None),
    review_required: bool = Form(True),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
    db: AsyncSession = Depends(get_db)
):
    """Create an art from its first source file."""
    upload = await read_upload(file)
    art, version = await pipeline.create_art(
        db,
        project_id=project_id,
        author_id=current_user.id,
        name=name,
        upload=upload,
        kind=kind,
        review_required=review_required,
    )
    return ArtCreatedResponse(
        art=ArtResponse.model_validate(art),
        version=ArtVersionResponse.model_validate(version),
    )


@router.get("/{art_id}", response_model=ArtResponse)
async def get_art(
    art_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get an art with its current version pointer and status."""
    art = await ledger.get_art(db, art_id)
    return ArtResponse.model_validate(art)


@router.get("/{art_id}/versions", response_model=List[ArtVersionResponse])
async def list_versions(
    art_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List every version of an art, oldest first."""
    versions = await ledger.list_versions(db, art_id)
    return [ArtVersionResponse.model_validate(v) for v in versions]


@router.get("/{art_id}/versions/{version_number}", response_model=ArtVersionResponse)
async def get_version(
    art_id: UUID,
    version_number: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one version of an art."""
    version = await ledger.get_version(db, art_id, version_number)
    return ArtVersionResponse.model_validate(version)


@router.post("/{art_id}/versions", response_model=ArtVersionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_LIMIT)
async def upload_version(
    request: Request,
    art_id: UUID,
    file: UploadFile = File(...),
    review_required: bool = Form(True),
    current_user: User = Depends(get_current_user),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
    db: AsyncSession = Depends(get_db)
):
    """Upload a new version of an art."""
    upload = await read_upload(file)
    version = await pipeline.ingest_version(
        db,
        art_id,
        upload,
        created_by=current_user.id,
        review_required=review_required,
    )
    return ArtVersionResponse.model_validate(version)


@router.post("/{art_id}/attachments", response_model=List[ArtFileResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_LIMIT)
async def add_attachments(
    request: Request,
    art_id: UUID,
    files: List[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
    db: AsyncSession = Depends(get_db)
):
    """Attach files to the current version of an art."""
    uploads = [await read_upload(f) for f in files]
    rows = await pipeline.add_attachments(db, art_id, uploads)
    return [ArtFileResponse.model_validate(row) for row in rows]


@router.post("/{art_id}/versions/{version_number}/submit", response_model=ArtVersionResponse)
async def submit_for_review(
    art_id: UUID,
    version_number: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Move a DRAFT version to PENDING_REVIEW."""
    version = await ledger.get_version(db, art_id, version_number)
    version = await approval_engine.submit_for_review(db, version.id)
    return ArtVersionResponse.model_validate(version)
