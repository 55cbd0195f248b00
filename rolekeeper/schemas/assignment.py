"""
Role assignment schemas.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from rolekeeper.kernel.models.role import RoleTag
from rolekeeper.schemas.audit import AuditRecordResponse


class AssignmentCreate(BaseModel):
    """Request to grant a role."""

    role_tag: RoleTag
    scope: Optional[str] = Field(None, max_length=100)


class TemporaryAssignmentCreate(BaseModel):
    """Request to grant a role until expires_at."""

    role_tag: RoleTag
    expires_at: datetime
    scope: Optional[str] = Field(None, max_length=100)


class AssignmentResponse(BaseModel):
    """Role assignment response."""

    id: uuid.UUID
    principal_id: uuid.UUID
    role_id: uuid.UUID
    role_tag: str
    level: int
    assigned_by: Optional[uuid.UUID]
    assigned_at: datetime
    expires_at: Optional[datetime]
    scope: Optional[str]
    status: str


class RoleCheckResponse(BaseModel):
    principal_id: uuid.UUID
    role_tag: str
    include_higher_roles: bool
    has_role: bool


class AnyRoleCheckResponse(BaseModel):
    principal_id: uuid.UUID
    role_tags: List[str]
    has_any_role: bool


class PermissionCheckResponse(BaseModel):
    principal_id: uuid.UUID
    resource: str
    action: str
    allowed: bool


class PrincipalByRoleResponse(BaseModel):
    """One principal listed under a role."""

    principal_id: uuid.UUID
    email: str
    display_name: Optional[str]
    principal_active: bool
    role_tag: str
    assignment_id: uuid.UUID
    assigned_at: datetime
    expires_at: Optional[datetime]
    status: str


class RoleHistoryResponse(BaseModel):
    """Role assignment history of a principal."""

    principal_id: uuid.UUID
    from_time: datetime
    to_time: datetime
    records: List[AuditRecordResponse]
    summary: Dict[str, int]
