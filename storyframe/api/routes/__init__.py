"""
API Routes.
"""
from .health import router as health_router
from .storyboards import router as storyboards_router
from .images import router as images_router
from .videos import router as videos_router
from .blobs import router as blobs_router

__all__ = [
    "health_router",
    "storyboards_router",
    "images_router",
    "videos_router",
    "blobs_router",
]
