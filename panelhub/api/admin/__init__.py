"""
Admin API Module - administrative interface for audiences, contests and the panel
"""
from fastapi import APIRouter

from .audience_routes import router as audience_router
from .contest_routes import router as contest_router
from .panel_routes import router as panel_router

admin_router = APIRouter(prefix="/admin")
admin_router.include_router(audience_router)
admin_router.include_router(contest_router)
admin_router.include_router(panel_router)

__all__ = ["admin_router"]
