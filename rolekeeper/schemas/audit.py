"""
Audit and activity schemas.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class AuditRecordResponse(BaseModel):
    """Audit record response."""

    id: uuid.UUID
    entity_name: str
    record_id: uuid.UUID
    action: str
    before_state: Optional[Dict[str, Any]]
    after_state: Optional[Dict[str, Any]]
    actor_id: Optional[uuid.UUID]
    subject_id: Optional[uuid.UUID]
    context: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityRecordResponse(BaseModel):
    """Activity feed entry."""

    id: uuid.UUID
    principal_id: uuid.UUID
    activity_type: str
    description: str
    details: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True
