"""
Share link endpoints: issuing, revoking and resolving guest links.
"""

from datetime import timedelta
from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.api.access import gate, require_project_owner
from app.core.database import get_db
from app.models.user import User
from app.schemas.art import ArtResponse, ArtVersionResponse
from app.schemas.shared_link import (
    CapabilityResponse,
    SharedArtResponse,
    SharedLinkCreate,
    SharedLinkResponse,
)
from app.services.auth_service import get_current_user
from app.services.storage_service import BlobStore, get_blob_store
from app.services.version_ledger import VersionLedger
from app.utils.exceptions import StorageError

router = APIRouter()
ledger = VersionLedger()


@router.post("/arts/{art_id}/links", response_model=SharedLinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    art_id: UUID,
    link_data: SharedLinkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Issue a share link for an art."""
    art = await ledger.get_art(db, art_id)
    await require_project_owner(db, art, current_user)
    expires_in = timedelta(hours=link_data.expires_in_hours) if link_data.expires_in_hours else None
    link = await gate.create_link(
        db,
        art_id,
        read_only=link_data.read_only,
        can_comment=link_data.can_comment,
        can_download=link_data.can_download,
        expires_at=link_data.expires_at,
        expires_in=expires_in,
        created_by=current_user.id,
    )
    return SharedLinkResponse.model_validate(link)


@router.get("/arts/{art_id}/links", response_model=List[SharedLinkResponse])
async def list_links(
    art_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the live and expired share links of an art."""
    art = await ledger.get_art(db, art_id)
    await require_project_owner(db, art, current_user)
    links = await gate.list_links(db, art_id)
    return [SharedLinkResponse.model_validate(link) for link in links]


@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_link(
    link_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke a share link."""
    link = await gate.get_link(db, link_id)
    art = await ledger.get_art(db, link.subject_id)
    await require_project_owner(db, art, current_user)
    await gate.revoke(db, link_id)


@router.get("/shared/{token}", response_model=SharedArtResponse)
async def resolve_shared(
    token: str,
    store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Open a share link: the art, its current version and what the link allows.

    Every failure, whether unknown or expired, answers with the same 404.
    """
    capability = await gate.resolve(db, token)
    art = await ledger.get_art(db, capability.subject_id)
    version = await ledger.get_version(db, art.id) if art.current_version_number else None

    preview_url = None
    download_url = None
    if version is not None:
        try:
            if version.preview_file_ref:
                preview_url = await store.signed_url(version.preview_file_ref)
            if capability.can_download:
                download_url = await store.signed_url(version.source_file_ref)
        except StorageError as e:
            logger.warning(f"Could not sign URLs for shared art {art.id}: {e}")

    return SharedArtResponse(
        art=ArtResponse.model_validate(art),
        version=ArtVersionResponse.model_validate(version) if version else None,
        capability=CapabilityResponse.model_validate(capability),
        preview_url=preview_url,
        download_url=download_url,
    )
