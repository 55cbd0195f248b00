"""
Delegation schemas.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from rolekeeper.kernel.models.role import RoleTag


class DelegationCreate(BaseModel):
    """Request to delegate management of roles. The caller is the delegator."""

    delegate_id: uuid.UUID
    role_tags: List[RoleTag] = Field(..., min_length=1)
    scope: Optional[str] = Field(None, max_length=100)
    ends_at: Optional[datetime] = None


class DelegationResponse(BaseModel):
    """Delegation response."""

    id: uuid.UUID
    delegator_id: uuid.UUID
    delegate_id: uuid.UUID
    role_tags: List[str]
    scope: Optional[str]
    ends_at: Optional[datetime]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
