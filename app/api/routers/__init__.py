"""
app/api/routers package marker.
"""

from app.api.routers.refresh import router as refresh_router

__all__ = ["refresh_router"]
