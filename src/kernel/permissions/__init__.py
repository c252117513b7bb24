"""
Permission Core - who may release escrow and manage audits.
"""

from src.kernel.permissions.permission_service import (
    PermissionService,
    has_admin_access,
)

__all__ = [
    "PermissionService",
    "has_admin_access",
]
