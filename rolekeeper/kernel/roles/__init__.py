"""
Role catalog.
"""

from rolekeeper.kernel.roles.role_service import RoleService

__all__ = ["RoleService"]
