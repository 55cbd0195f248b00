"""
Permission resolution and the permission catalog.
"""

from rolekeeper.kernel.permissions.permission_service import PermissionService

__all__ = ["PermissionService"]
