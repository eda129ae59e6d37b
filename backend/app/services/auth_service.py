"""
Authentication service for internal users and JWT session tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID
import hashlib
import bcrypt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import JWTError, jwt
from loguru import logger

from app.core.database import get_db
from app.core.config import settings
from app.models.user import User
from app.utils.exceptions import ConflictError, ForbiddenError, UnauthenticatedError

bearer_scheme = HTTPBearer(auto_error=False)


class AuthService:
    """Password hashing, token issuance and principal lookup."""

    def _password_bytes(self, password: str) -> bytes:
        password_bytes = password.encode('utf-8')
        # Bcrypt only reads 72 bytes; longer passwords are pre-hashed
        if len(password_bytes) > 72:
            logger.debug(f"Password exceeds 72 bytes ({len(password_bytes)}), pre-hashing with SHA256")
            password_bytes = hashlib.sha256(password_bytes).hexdigest().encode('utf-8')
        return password_bytes

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        hashed = bcrypt.hashpw(self._password_bytes(password), bcrypt.gensalt())
        return hashed.decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        return bcrypt.checkpw(self._password_bytes(plain_password), hashed_password.encode('utf-8'))

    def create_access_token(self, user_id: UUID) -> str:
        """Create a JWT access token."""
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode = {
            "sub": str(user_id),
            "exp": expire,
            "type": "access"
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    async def get_user_by_username(self, username: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str, db: AsyncSession) -> Optional[User]:
        try:
            user_uuid = UUID(user_id)
        except ValueError:
            return None
        result = await db.execute(select(User).where(User.id == user_uuid))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        username: str,
        email: str,
        password: str,
        db: AsyncSession,
        full_name: Optional[str] = None,
        role: str = "user",
    ) -> User:
        """Create a new internal user."""
        if await self.get_user_by_username(username, db):
            raise ConflictError("Username already exists")

        if await self.get_user_by_email(email, db):
            raise ConflictError("Email already exists")

        user = User(
            username=username,
            email=email.lower(),
            hashed_password=self.hash_password(password),
            full_name=full_name,
            is_active=True,
            role=role,
        )

        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info(f"Created new user: {username}")
        return user

    async def authenticate_user(
        self,
        username: str,
        password: str,
        db: AsyncSession
    ) -> Optional[User]:
        """Authenticate a user with username and password."""
        user = await self.get_user_by_username(username, db)

        if not user or not user.is_active:
            return None

        if not self.verify_password(password, user.hashed_password):
            return None

        return user

    async def principal_from_token(self, token: str, db: AsyncSession) -> Optional[User]:
        """Resolve a bearer token to an active user, or None when it is invalid."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError as e:
            logger.debug(f"Rejected bearer token: {e}")
            return None

        user_id = payload.get("sub")
        if user_id is None or payload.get("type") != "access":
            return None

        user = await self.get_user_by_id(user_id, db)
        if user is None or not user.is_active:
            return None
        return user


# Global instance for dependency injection
auth_service = AuthService()


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Session principal when a valid bearer token is present; guests get None."""
    if credentials is None:
        return None
    user = await auth_service.principal_from_token(credentials.credentials, db)
    if user is None:
        raise UnauthenticatedError("Could not validate credentials")
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Dependency for getting the authenticated user."""
    if user is None:
        raise UnauthenticatedError()
    return user


async def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency for requiring admin privileges."""
    if not current_user.is_admin():
        raise ForbiddenError("Admin privileges required")
    return current_user
