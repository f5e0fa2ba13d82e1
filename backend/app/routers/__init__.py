"""Implant Warranty - API Routers"""
from .auth import router as auth_router
from .warranty import router as warranty_router
from .admin import router as admin_router

__all__ = [
    "auth_router",
    "warranty_router",
    "admin_router",
]
