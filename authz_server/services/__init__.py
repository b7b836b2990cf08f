# (c) Copyright Datacraft, 2026
"""Authorization services."""
from .permissions import PermissionService

__all__ = ["PermissionService"]
