"""
Request-level participant resolution shared by the endpoints.

A request carrying a share token acts as a guest of that link; otherwise it
must carry an internal session.
"""

from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.art import Art
from app.models.project import Project
from app.models.user import User
from app.services.access_gate import AccessGate, Action, Capability
from app.services.identity_service import IdentityResolver, Participant
from app.utils.exceptions import ForbiddenError, InvalidInputError

gate = AccessGate()
identities = IdentityResolver()


async def resolve_participant(
    db: AsyncSession,
    user: Optional[User],
    art_id: UUID,
    action: Action,
    token: Optional[str] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> Tuple[Participant, Optional[Capability]]:
    """Identify the author or approver of a write, checking the link for guests."""
    if token:
        capability = await gate.authorize(db, token, art_id, action)
        if not email:
            raise InvalidInputError("guests must identify with an email", field="email")
        guest = await identities.resolve_guest(db, email, name)
        return Participant.guest(guest.id), capability

    internal = identities.resolve_internal(user)
    return Participant.internal(internal.user_id), None


async def require_viewer(
    db: AsyncSession,
    user: Optional[User],
    art_id: UUID,
    token: Optional[str] = None,
) -> Optional[Capability]:
    """Allow a read by an internal user or by any live link to the art."""
    if token:
        return await gate.authorize(db, token, art_id, Action.VIEW)
    identities.resolve_internal(user)
    return None


async def require_project_owner(db: AsyncSession, art: Art, user: User) -> None:
    """Project owner or admin; the capability needed for overrides and link management."""
    if user.is_admin():
        return
    project = await db.get(Project, art.project_id)
    if project is None or project.owner_id != user.id:
        raise ForbiddenError("Only the project owner or an administrator may do this")
