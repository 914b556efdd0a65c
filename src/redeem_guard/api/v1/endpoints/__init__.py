"""API endpoint modules for version 1."""

from .admin import router as admin_router
from .redemptions import router as redemptions_router
from .system import router as system_router
from .webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "redemptions_router",
    "system_router",
    "webhooks_router",
]
