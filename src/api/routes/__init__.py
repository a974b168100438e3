"""API routes package.

This module contains all route handlers for the HTTP API.
"""

from src.api.routes.admin import router as admin_router
from src.api.routes.auth import router as auth_router
from src.api.routes.carousel import router as carousel_router
from src.api.routes.health import router as health_router
from src.api.routes.public import router as public_router

__all__ = [
    "admin_router",
    "auth_router",
    "carousel_router",
    "health_router",
    "public_router",
]
