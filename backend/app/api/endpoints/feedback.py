"""
Feedback thread endpoints.
"""

from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.access import require_viewer, resolve_participant
from app.core.database import get_db
from app.core.rate_limit import limiter, GUEST_WRITE_LIMIT
from app.models.user import User
from app.schemas.feedback import (
    ArtFeedbackResponse,
    FeedbackCreate,
    FeedbackResponse,
    FeedbackStatusUpdate,
    ReplyCreate,
    ReplyResponse,
    VersionFeedback,
)
from app.services.access_gate import Action
from app.services.auth_service import get_current_user_optional
from app.services.feedback_service import FeedbackThread, Position
from app.services.media_service import read_upload
from app.services.storage_service import BlobStore, get_blob_store
from app.services.version_ledger import VersionLedger

router = APIRouter()
ledger = VersionLedger()


def get_feedback_thread(store: BlobStore = Depends(get_blob_store)) -> FeedbackThread:
    return FeedbackThread(store=store, ledger=ledger)


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(GUEST_WRITE_LIMIT)
async def post_feedback(
    request: Request,
    feedback_data: FeedbackCreate,
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Post text feedback, or audio feedback whose blob is already stored."""
    version = await ledger.get_version_by_id(db, feedback_data.version_id)
    author, capability = await resolve_participant(
        db,
        current_user,
        version.art_id,
        Action.COMMENT,
        token=feedback_data.token,
        email=feedback_data.email,
        name=feedback_data.name,
    )

    position = None
    if feedback_data.position is not None:
        position = Position(**feedback_data.position.model_dump())

    item = await thread.post(
        db,
        feedback_data.version_id,
        author,
        feedback_data.kind,
        content=feedback_data.content,
        audio_ref=feedback_data.audio_ref,
        position=position,
        capability=capability,
    )
    return FeedbackResponse.from_item(item)


@router.post("/feedback/audio", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(GUEST_WRITE_LIMIT)
async def post_audio_feedback(
    request: Request,
    version_id: UUID = Form(...),
    file: UploadFile = File(...),
    content: Optional[str] = Form(None),
    rel_x: Optional[float] = Form(None),
    rel_y: Optional[float] = Form(None),
    abs_x: Optional[float] = Form(None),
    abs_y: Optional[float] = Form(None),
    token: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Upload an audio note and post it as feedback."""
    version = await ledger.get_version_by_id(db, version_id)
    author, capability = await resolve_participant(
        db, current_user, version.art_id, Action.COMMENT, token=token, email=email, name=name
    )

    item = await thread.post_audio(
        db,
        version_id,
        author,
        await read_upload(file),
        content=content,
        position=Position(rel_x=rel_x, rel_y=rel_y, abs_x=abs_x, abs_y=abs_y),
        capability=capability,
    )
    return FeedbackResponse.from_item(item)


@router.patch("/feedback/{feedback_id}/status", response_model=FeedbackResponse)
async def update_feedback_status(
    feedback_id: UUID,
    status_data: FeedbackStatusUpdate,
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Change the triage status of a feedback item."""
    item = await thread.get(db, feedback_id)
    _, capability = await resolve_participant(
        db,
        current_user,
        item.art_id,
        Action.COMMENT,
        token=status_data.token,
        email=status_data.email,
        name=status_data.name,
    )
    item = await thread.set_status(db, feedback_id, status_data.status, capability=capability)
    return FeedbackResponse.from_item(item)


@router.get("/versions/{version_id}/feedback", response_model=List[FeedbackResponse])
async def list_version_feedback(
    version_id: UUID,
    token: Optional[str] = Query(None, description="Share token for guest access"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Feedback on one version, oldest first."""
    version = await ledger.get_version_by_id(db, version_id)
    await require_viewer(db, current_user, version.art_id, token)
    items = await thread.list_by_version(db, version_id)
    return [FeedbackResponse.from_item(item) for item in items]


@router.get("/arts/{art_id}/feedback", response_model=ArtFeedbackResponse)
async def list_art_feedback(
    art_id: UUID,
    token: Optional[str] = Query(None, description="Share token for guest access"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Feedback across all versions of an art, grouped by version."""
    await require_viewer(db, current_user, art_id, token)
    grouped = await thread.list_all_for_art(db, art_id)
    return ArtFeedbackResponse(
        art_id=art_id,
        versions=[
            VersionFeedback(
                version_number=number,
                items=[FeedbackResponse.from_item(item) for item in items],
            )
            for number, items in grouped.items()
        ],
    )


@router.get("/feedback/{feedback_id}/replies", response_model=List[ReplyResponse])
async def list_replies(
    feedback_id: UUID,
    token: Optional[str] = Query(None, description="Share token for guest access"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Replies under a feedback item, oldest first."""
    item = await thread.get(db, feedback_id)
    await require_viewer(db, current_user, item.art_id, token)
    replies = await thread.list_replies(db, feedback_id)
    return [ReplyResponse.model_validate(reply) for reply in replies]


@router.post("/feedback/{feedback_id}/replies", response_model=ReplyResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(GUEST_WRITE_LIMIT)
async def add_reply(
    request: Request,
    feedback_id: UUID,
    reply_data: ReplyCreate,
    current_user: Optional[User] = Depends(get_current_user_optional),
    thread: FeedbackThread = Depends(get_feedback_thread),
    db: AsyncSession = Depends(get_db)
):
    """Reply to a feedback item."""
    item = await thread.get(db, feedback_id)
    author, capability = await resolve_participant(
        db,
        current_user,
        item.art_id,
        Action.COMMENT,
        token=reply_data.token,
        email=reply_data.email,
        name=reply_data.name,
    )
    reply = await thread.add_reply(
        db,
        feedback_id,
        author,
        reply_data.content,
        status_after=reply_data.status_after,
        capability=capability,
    )
    return ReplyResponse.model_validate(reply)
