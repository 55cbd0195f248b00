"""
Audit trail endpoints (read-only).
"""

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query

from rolekeeper.api.deps import DbSession, RequireAuditRead
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.models.audit import AuditAction
from rolekeeper.schemas.audit import AuditRecordResponse

router = APIRouter()


@router.get("/records", response_model=List[AuditRecordResponse])
async def search_audit_records(
    _: RequireAuditRead,
    db: DbSession,
    entity_name: Optional[str] = Query(None),
    record_id: Optional[uuid.UUID] = Query(None),
    subject_id: Optional[uuid.UUID] = Query(None),
    actor_id: Optional[uuid.UUID] = Query(None),
    action: Optional[List[AuditAction]] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """Search audit records, newest first. Requires audit:read."""
    records = await AuditTrail(db).search(
        entity_name=entity_name,
        record_id=record_id,
        subject_id=subject_id,
        actor_id=actor_id,
        actions=action,
        since=since,
        until=until,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return [AuditRecordResponse.model_validate(r) for r in records]
