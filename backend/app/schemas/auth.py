"""
Schemas for internal users: the principals that own projects, approve
versions and manage share links. Guests never authenticate here.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field


class UserLogin(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=100)


class UserRegister(BaseModel):
    """New internal user; the role is always "user" on self-registration."""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    full_name: Optional[str] = Field(None, max_length=200)


class UserResponse(BaseModel):
    """Internal principal as seen by clients choosing approvers."""
    id: UUID
    username: str
    email: str
    full_name: Optional[str]
    role: Literal["admin", "user"]
    created_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Bearer token for the session principal."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
