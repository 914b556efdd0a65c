"""Version 1 API endpoints."""

from .endpoints import admin_router, redemptions_router, system_router, webhooks_router

__all__ = [
    "admin_router",
    "redemptions_router",
    "system_router",
    "webhooks_router",
]
