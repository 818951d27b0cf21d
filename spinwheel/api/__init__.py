"""API package - FastAPI routes and dependencies."""
from .dependencies import get_spin_service
from .routers import admin_router, catalog_router, health_router, spins_router

__all__ = [
    "admin_router",
    "catalog_router",
    "get_spin_service",
    "health_router",
    "spins_router",
]
