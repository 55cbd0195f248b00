"""
Built-in roles and the administrative permission catalog.

The engine guards its own administrative surface with ordinary explicit
permissions, so the same has_permission check that consumers use also
decides who may edit roles and permissions.
"""

from typing import Dict, Tuple

from rolekeeper.kernel.models.role import RoleTag

# (tag, name, description)
DEFAULT_ROLES: Tuple[Tuple[RoleTag, str, str], ...] = (
    (RoleTag.SUPER_ADMIN, "Super Administrator", "Full system access"),
    (RoleTag.ADMIN, "Administrator", "System administration"),
    (RoleTag.MANAGER, "Manager", "Department or team management"),
    (RoleTag.MODERATOR, "Moderator", "Content moderation"),
    (RoleTag.EDITOR, "Editor", "Content editing"),
    (RoleTag.USER, "User", "Standard access"),
    (RoleTag.GUEST, "Guest", "Limited read access"),
)

# Administrative resources and actions
ROLE_RESOURCE = "role"
PERMISSION_RESOURCE = "permission"
PRINCIPAL_RESOURCE = "principal"
AUDIT_RESOURCE = "audit"

# (name, resource, action, description)
ADMIN_PERMISSIONS: Tuple[Tuple[str, str, str, str], ...] = (
    ("role:create", ROLE_RESOURCE, "create", "Create roles"),
    ("role:delete", ROLE_RESOURCE, "delete", "Soft-delete non-system roles"),
    ("role:read", ROLE_RESOURCE, "read", "Read other principals' role holdings"),
    ("permission:create", PERMISSION_RESOURCE, "create", "Create permissions"),
    ("permission:assign", PERMISSION_RESOURCE, "assign", "Grant and revoke permissions on roles"),
    ("principal:manage", PRINCIPAL_RESOURCE, "manage", "Register, deactivate and restore principals"),
    ("audit:read", AUDIT_RESOURCE, "read", "Read the audit and activity trail"),
)

# Which built-in roles receive which administrative permissions
DEFAULT_ROLE_GRANTS: Dict[RoleTag, Tuple[str, ...]] = {
    RoleTag.SUPER_ADMIN: tuple(name for name, _, _, _ in ADMIN_PERMISSIONS),
    RoleTag.ADMIN: (
        "role:create",
        "role:delete",
        "role:read",
        "permission:create",
        "permission:assign",
        "principal:manage",
        "audit:read",
    ),
    RoleTag.MANAGER: ("role:read", "audit:read"),
}
