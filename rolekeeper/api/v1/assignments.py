"""
Role holding endpoints: grant, revoke, temporary roles, checks and history.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query, status

from rolekeeper.api.deps import (
    CurrentPrincipal,
    DbSession,
    RequireAuditReadOrSelf,
    RequireRoleReadOrSelf,
)
from rolekeeper.kernel.assignments.holdings import RoleHolding
from rolekeeper.kernel.assignments.role_assignment_service import RoleAssignmentService
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.hierarchy import level_of
from rolekeeper.kernel.models.assignment import RoleAssignment
from rolekeeper.kernel.models.role import Role
from rolekeeper.kernel.permissions.permission_service import PermissionService
from rolekeeper.schemas.assignment import (
    AnyRoleCheckResponse,
    AssignmentCreate,
    AssignmentResponse,
    PermissionCheckResponse,
    RoleCheckResponse,
    RoleHistoryResponse,
    TemporaryAssignmentCreate,
)
from rolekeeper.schemas.audit import ActivityRecordResponse, AuditRecordResponse
from rolekeeper.schemas.common import OperationResponse

router = APIRouter()


def assignment_response(assignment: RoleAssignment, role: Role) -> AssignmentResponse:
    return AssignmentResponse(
        id=assignment.id,
        principal_id=assignment.principal_id,
        role_id=role.id,
        role_tag=role.tag,
        level=level_of(role.tag),
        assigned_by=assignment.assigned_by,
        assigned_at=assignment.assigned_at,
        expires_at=assignment.expires_at,
        scope=assignment.scope,
        status=assignment.status,
    )


def _holding_response(holding: RoleHolding) -> AssignmentResponse:
    return assignment_response(holding.assignment, holding.role)


@router.get("/{principal_id}/roles", response_model=List[AssignmentResponse])
async def list_effective_roles(
    principal_id: uuid.UUID,
    _: RequireRoleReadOrSelf,
    db: DbSession,
):
    """Live roles of a principal, highest level first."""
    holdings = await RoleAssignmentService(db).effective_roles(principal_id)
    return [_holding_response(h) for h in holdings]


@router.post(
    "/{principal_id}/roles",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_role(
    principal_id: uuid.UUID,
    data: AssignmentCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Grant a role. The caller must outrank it or hold a delegation for it."""
    service = RoleAssignmentService(db)
    assignment = await service.grant(
        principal_id, data.role_tag, managed_by=caller.id, scope=data.scope
    )
    role = await db.get(Role, assignment.role_id)
    return assignment_response(assignment, role)


@router.post(
    "/{principal_id}/roles/temporary",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_temporary_role(
    principal_id: uuid.UUID,
    data: TemporaryAssignmentCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Grant a role that expires at data.expires_at."""
    service = RoleAssignmentService(db)
    assignment = await service.assign_temporary(
        principal_id,
        data.role_tag,
        expires_at=data.expires_at,
        assigned_by=caller.id,
        scope=data.scope,
    )
    role = await db.get(Role, assignment.role_id)
    return assignment_response(assignment, role)


@router.delete("/{principal_id}/roles/{role_tag}", response_model=OperationResponse)
async def revoke_role(
    principal_id: uuid.UUID,
    role_tag: str,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Revoke a role. Revoking something not held reports not_found."""
    result = await RoleAssignmentService(db).revoke(principal_id, role_tag, managed_by=caller.id)
    return OperationResponse(status=result.status.value, message=result.message)


@router.get("/{principal_id}/roles/any", response_model=AnyRoleCheckResponse)
async def check_any_role(
    principal_id: uuid.UUID,
    _: RequireRoleReadOrSelf,
    db: DbSession,
    tags: List[str] = Query(..., min_length=1),
):
    has_any = await PermissionService(db).has_any_role(principal_id, tags)
    return AnyRoleCheckResponse(principal_id=principal_id, role_tags=tags, has_any_role=has_any)


@router.get("/{principal_id}/roles/{role_tag}/check", response_model=RoleCheckResponse)
async def check_role(
    principal_id: uuid.UUID,
    role_tag: str,
    _: RequireRoleReadOrSelf,
    db: DbSession,
    include_higher_roles: bool = Query(True),
):
    """Whether the principal holds role_tag (or, by default, anything above it)."""
    has_role = await RoleAssignmentService(db).check(
        principal_id, role_tag, include_higher_roles=include_higher_roles
    )
    return RoleCheckResponse(
        principal_id=principal_id,
        role_tag=role_tag,
        include_higher_roles=include_higher_roles,
        has_role=has_role,
    )


@router.get("/{principal_id}/permissions/check", response_model=PermissionCheckResponse)
async def check_permission(
    principal_id: uuid.UUID,
    _: RequireRoleReadOrSelf,
    db: DbSession,
    resource: str = Query(...),
    action: str = Query(...),
):
    allowed = await PermissionService(db).has_permission(principal_id, resource, action)
    return PermissionCheckResponse(
        principal_id=principal_id,
        resource=resource,
        action=action,
        allowed=allowed,
    )


@router.get("/{principal_id}/role-history", response_model=RoleHistoryResponse)
async def role_history(
    principal_id: uuid.UUID,
    _: RequireAuditReadOrSelf,
    db: DbSession,
    from_time: Optional[datetime] = Query(None),
    to_time: Optional[datetime] = Query(None),
):
    """Audit trail of a principal's role assignments with a change summary."""
    history = await RoleAssignmentService(db).role_assignment_history(
        principal_id, from_time=from_time, to_time=to_time
    )
    return RoleHistoryResponse(
        principal_id=principal_id,
        from_time=history.from_time,
        to_time=history.to_time,
        records=[AuditRecordResponse.model_validate(r) for r in history.records],
        summary=history.summary,
    )


@router.get("/{principal_id}/activity", response_model=List[ActivityRecordResponse])
async def activity_feed(
    principal_id: uuid.UUID,
    _: RequireAuditReadOrSelf,
    db: DbSession,
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    records = await AuditTrail(db).activity_for(principal_id, since=since, until=until, limit=limit)
    return [ActivityRecordResponse.model_validate(r) for r in records]
