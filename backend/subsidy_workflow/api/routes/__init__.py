"""API Routes module"""
from fastapi import APIRouter

from .workflow import router as workflow_router

# Main API router
api_router = APIRouter()

api_router.include_router(workflow_router, prefix="/workflow", tags=["Workflow"])

__all__ = ["api_router"]
