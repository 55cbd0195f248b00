"""
Role and permission catalog schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rolekeeper.kernel.models.role import RoleTag


class RoleCreate(BaseModel):
    """Role creation request."""

    name: str = Field(..., min_length=1, max_length=100)
    tag: RoleTag
    description: Optional[str] = Field(None, max_length=2000)


class RoleResponse(BaseModel):
    """Role response."""

    id: uuid.UUID
    name: str
    tag: str
    level: int
    description: Optional[str]
    is_system: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PermissionCreate(BaseModel):
    """Permission creation request."""

    name: str = Field(..., min_length=1, max_length=150)
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=2000)


class PermissionResponse(BaseModel):
    """Permission response."""

    id: uuid.UUID
    name: str
    resource: str
    action: str
    description: Optional[str]
    is_system: bool
    is_active: bool

    class Config:
        from_attributes = True


class RoleGrantCreate(BaseModel):
    """Request to grant a permission to a role."""

    permission_name: str = Field(..., min_length=1, max_length=150)


class RoleGrantResponse(BaseModel):
    """A role's grant of one permission."""

    id: uuid.UUID
    role_tag: str
    permission: PermissionResponse
    granted_by: Optional[uuid.UUID]
    granted_at: datetime
