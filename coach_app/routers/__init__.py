"""Routers for the notification API."""

from .commands import router as commands_router
from .delivery import router as delivery_router
from .notifications import router as notifications_router

__all__ = ["commands_router", "delivery_router", "notifications_router"]
