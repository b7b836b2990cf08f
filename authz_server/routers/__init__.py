# (c) Copyright Datacraft, 2026
"""API routers."""
from .permissions import router as permissions_router

__all__ = ["permissions_router"]
