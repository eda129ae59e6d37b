"""
Project-related Pydantic schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    """Schema for creating a project."""
    name: str = Field(..., min_length=1, max_length=200)


class ProjectResponse(BaseModel):
    """Schema for project response."""
    id: UUID
    name: str
    owner_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
