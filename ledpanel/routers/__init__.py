"""
Routers Package
"""

from ledpanel.routers.display import router as display_router
from ledpanel.routers.images import router as images_router

__all__ = [
    "display_router",
    "images_router",
]
