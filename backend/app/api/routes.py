"""
Main API router configuration.
"""

from fastapi import APIRouter
from app.api.endpoints import approvals, arts, auth, feedback, projects, shared

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(arts.router, prefix="/arts", tags=["arts"])
api_router.include_router(approvals.router, tags=["approvals"])
api_router.include_router(feedback.router, tags=["feedback"])
api_router.include_router(shared.router, tags=["shared links"])
