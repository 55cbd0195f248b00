"""
Role and permission catalog endpoints.
"""

from typing import List

from fastapi import APIRouter, Query, status

from rolekeeper.api.deps import CurrentPrincipal, DbSession
from rolekeeper.kernel.assignments.role_assignment_service import RoleAssignmentService
from rolekeeper.kernel.hierarchy import level_of
from rolekeeper.kernel.models.permission import Permission, RoleGrant
from rolekeeper.kernel.models.role import Role
from rolekeeper.kernel.permissions.catalog import ROLE_RESOURCE
from rolekeeper.kernel.permissions.permission_service import PermissionService
from rolekeeper.kernel.roles.role_service import RoleService
from rolekeeper.schemas.assignment import PrincipalByRoleResponse
from rolekeeper.schemas.common import OperationResponse
from rolekeeper.schemas.role import (
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleGrantCreate,
    RoleGrantResponse,
    RoleResponse,
)

router = APIRouter()


def _role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        tag=role.tag,
        level=level_of(role.tag),
        description=role.description,
        is_system=role.is_system,
        is_active=role.is_active,
        created_at=role.created_at,
    )


def _grant_response(role_tag: str, grant: RoleGrant, permission: Permission) -> RoleGrantResponse:
    return RoleGrantResponse(
        id=grant.id,
        role_tag=role_tag,
        permission=PermissionResponse.model_validate(permission),
        granted_by=grant.granted_by,
        granted_at=grant.granted_at,
    )


# Roles

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    caller: CurrentPrincipal,
    db: DbSession,
    include_inactive: bool = Query(False),
):
    """List roles, highest level first."""
    roles = await RoleService(db).list_roles(include_inactive=include_inactive)
    return [_role_response(r) for r in roles]


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Create a role. Requires role:create and a level above the new role."""
    role = await RoleService(db).create_role(
        data.name, data.tag, actor_id=caller.id, description=data.description
    )
    return _role_response(role)


@router.get("/roles/{role_tag}", response_model=RoleResponse)
async def get_role(
    role_tag: str,
    caller: CurrentPrincipal,
    db: DbSession,
):
    role = await RoleService(db).get_role(role_tag)
    return _role_response(role)


@router.delete("/roles/{role_tag}", response_model=RoleResponse)
async def delete_role(
    role_tag: str,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Soft-delete a role, retiring its assignments and grants."""
    role = await RoleService(db).soft_delete_role(role_tag, actor_id=caller.id)
    return _role_response(role)


@router.get("/roles/{role_tag}/principals", response_model=List[PrincipalByRoleResponse])
async def list_principals_by_role(
    role_tag: str,
    caller: CurrentPrincipal,
    db: DbSession,
    include_inactive: bool = Query(False),
    include_higher_roles: bool = Query(False),
):
    """Principals holding a role. Requires role:read."""
    await PermissionService(db).authorize(caller.id, ROLE_RESOURCE, "read")
    entries = await RoleAssignmentService(db).list_principals_by_role(
        role_tag,
        include_inactive=include_inactive,
        include_higher_roles=include_higher_roles,
    )
    return [
        PrincipalByRoleResponse(
            principal_id=e.principal.id,
            email=e.principal.email,
            display_name=e.principal.display_name,
            principal_active=e.principal.is_active,
            role_tag=e.role.tag,
            assignment_id=e.assignment.id,
            assigned_at=e.assignment.assigned_at,
            expires_at=e.assignment.expires_at,
            status=e.assignment.status,
        )
        for e in entries
    ]


# Role grants

@router.get("/roles/{role_tag}/permissions", response_model=List[RoleGrantResponse])
async def list_role_permissions(
    role_tag: str,
    caller: CurrentPrincipal,
    db: DbSession,
):
    pairs = await PermissionService(db).role_permissions(role_tag)
    return [_grant_response(role_tag, grant, permission) for grant, permission in pairs]


@router.post(
    "/roles/{role_tag}/permissions",
    response_model=RoleGrantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_permission(
    role_tag: str,
    data: RoleGrantCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Grant a permission to a role. Requires permission:assign."""
    service = PermissionService(db)
    grant = await service.grant_permission(role_tag, data.permission_name, granted_by=caller.id)
    permission = await db.get(Permission, grant.permission_id)
    return _grant_response(role_tag, grant, permission)


@router.delete(
    "/roles/{role_tag}/permissions/{permission_name}",
    response_model=OperationResponse,
)
async def revoke_permission(
    role_tag: str,
    permission_name: str,
    caller: CurrentPrincipal,
    db: DbSession,
):
    result = await PermissionService(db).revoke_permission(
        role_tag, permission_name, revoked_by=caller.id
    )
    return OperationResponse(status=result.status.value, message=result.message)


# Permissions

@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    caller: CurrentPrincipal,
    db: DbSession,
    include_inactive: bool = Query(False),
):
    permissions = await PermissionService(db).list_permissions(include_inactive=include_inactive)
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.post(
    "/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_permission(
    data: PermissionCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Register a (resource, action) permission. Requires permission:create."""
    permission = await PermissionService(db).create_permission(
        data.name,
        data.resource,
        data.action,
        actor_id=caller.id,
        description=data.description,
    )
    return PermissionResponse.model_validate(permission)
