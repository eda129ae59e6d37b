"""
Tests for share-link validation and capabilities.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from app.services.access_gate import AccessGate, Action
from app.utils.exceptions import (
    ExpiredLinkError,
    ForbiddenError,
    InvalidInputError,
    InvalidTokenError,
    LinkUnavailableError,
    NotFoundError,
    ScopeMismatchError,
)

from factories import create_test_art


@pytest.fixture
async def art(db_session, blob_store, project, test_user, clock):
    art, _ = await create_test_art(db_session, blob_store, project, test_user, clock=clock)
    return art


@pytest.fixture
def gate(clock):
    return AccessGate(clock=clock)


@pytest.mark.asyncio
async def test_authorize_returns_capability(db_session, gate, art):
    """A live link yields its flags."""
    link = await gate.create_link(db_session, art.id, can_download=True, expires_in=timedelta(days=1))

    capability = await gate.authorize(db_session, link.token, art.id, Action.VIEW)

    assert capability.link_id == link.id
    assert capability.subject_id == art.id
    assert capability.can_comment is True
    assert capability.can_download is True
    assert capability.read_only is False


@pytest.mark.asyncio
async def test_unknown_token(db_session, gate, art):
    with pytest.raises(InvalidTokenError):
        await gate.authorize(db_session, "no-such-token", art.id)

    with pytest.raises(InvalidTokenError):
        await gate.authorize(db_session, "", art.id)


@pytest.mark.asyncio
async def test_expiry_is_exclusive_of_the_deadline(db_session, gate, clock, art):
    """One second before expiry works; at the expiry instant the link is dead."""
    link = await gate.create_link(db_session, art.id, expires_in=timedelta(hours=1))
    deadline = clock.now() + timedelta(hours=1)

    clock.set(deadline - timedelta(seconds=1))
    await gate.authorize(db_session, link.token, art.id, Action.COMMENT)

    clock.set(deadline)
    with pytest.raises(ExpiredLinkError):
        await gate.authorize(db_session, link.token, art.id, Action.COMMENT)


@pytest.mark.asyncio
async def test_expiry_is_checked_on_every_call(db_session, gate, clock, art):
    """A capability issued earlier does not keep the token valid."""
    link = await gate.create_link(db_session, art.id, expires_in=timedelta(minutes=5))
    await gate.authorize(db_session, link.token, art.id)

    clock.advance(minutes=10)

    with pytest.raises(ExpiredLinkError):
        await gate.authorize(db_session, link.token, art.id)


@pytest.mark.asyncio
async def test_scope_mismatch(db_session, gate, blob_store, project, test_user, clock, art):
    """A link for one art cannot open another."""
    other, _ = await create_test_art(db_session, blob_store, project, test_user, name="Banner", clock=clock)
    link = await gate.create_link(db_session, art.id)

    with pytest.raises(ScopeMismatchError):
        await gate.authorize(db_session, link.token, other.id)


@pytest.mark.asyncio
async def test_read_only_link_rejects_writes(db_session, gate, art):
    """Read-only links can view but not comment or decide."""
    link = await gate.create_link(db_session, art.id, read_only=True)

    await gate.authorize(db_session, link.token, art.id, Action.VIEW)
    for action in (Action.COMMENT, Action.DECIDE):
        with pytest.raises(ForbiddenError):
            await gate.authorize(db_session, link.token, art.id, action)


@pytest.mark.asyncio
async def test_flags_gate_comment_and_download(db_session, gate, art):
    no_comment = await gate.create_link(db_session, art.id, can_comment=False)
    with pytest.raises(ForbiddenError):
        await gate.authorize(db_session, no_comment.token, art.id, Action.COMMENT)

    no_download = await gate.create_link(db_session, art.id, can_download=False)
    with pytest.raises(ForbiddenError):
        await gate.authorize(db_session, no_download.token, art.id, Action.DOWNLOAD)


@pytest.mark.asyncio
async def test_link_errors_share_one_family(db_session, gate, art):
    """Every link rejection is a LinkUnavailableError."""
    for error in (InvalidTokenError(), ExpiredLinkError(), ScopeMismatchError()):
        assert isinstance(error, LinkUnavailableError)


@pytest.mark.asyncio
async def test_create_link_validation(db_session, gate, clock, art):
    with pytest.raises(InvalidInputError):
        await gate.create_link(db_session, art.id, expires_at=clock.now() - timedelta(seconds=1))

    with pytest.raises(NotFoundError):
        await gate.create_link(db_session, uuid4())


@pytest.mark.asyncio
async def test_tokens_are_unique_and_opaque(db_session, gate, art):
    first = await gate.create_link(db_session, art.id)
    second = await gate.create_link(db_session, art.id)

    assert first.token != second.token
    assert len(first.token) >= 40
    assert str(art.id) not in first.token


@pytest.mark.asyncio
async def test_revoke_deletes_link(db_session, gate, art):
    """Revoked links behave exactly like unknown ones."""
    link = await gate.create_link(db_session, art.id)
    token, link_id = link.token, link.id

    await gate.revoke(db_session, link_id)

    with pytest.raises(InvalidTokenError):
        await gate.authorize(db_session, token, art.id)

    with pytest.raises(NotFoundError):
        await gate.revoke(db_session, link_id)
