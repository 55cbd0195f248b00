"""
Audit & activity trail.

Every mutation of a tracked entity writes exactly one AuditRecord in the
same session, so the record commits or rolls back with the change it
describes. A curated subset of actions also produces an ActivityRecord for
the affected principal.

Auditing is best-effort. The rows are flushed inside a SAVEPOINT; if they
cannot be built or the database rejects them, only the savepoint is rolled
back, the failure goes to the rolekeeper.audit.failures logger and to
error_logs, and the primary mutation still reports success.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, desc, func, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from rolekeeper.logging_config import AUDIT_FAILURE_LOGGER, get_logger, get_request_id
from rolekeeper.kernel.events.snapshots import changed_fields, serialize_value, snapshot
from rolekeeper.kernel.models.audit import (
    ActivityRecord,
    ActivityType,
    AuditAction,
    AuditRecord,
    ErrorLog,
    ErrorSeverity,
)
from rolekeeper.kernel.models.base import generate_uuid, utcnow

logger = get_logger(__name__)
failure_logger = get_logger(AUDIT_FAILURE_LOGGER)


# Audit actions that also appear in the affected principal's activity feed
ACTIVITY_FOR_ACTION: Dict[AuditAction, ActivityType] = {
    AuditAction.CREATE: ActivityType.CREATE,
    AuditAction.UPDATE: ActivityType.UPDATE,
    AuditAction.SOFT_DELETE: ActivityType.DELETE,
    AuditAction.RESTORE: ActivityType.RESTORE,
    AuditAction.ROLE_GRANT: ActivityType.ROLE_ASSIGNED,
    AuditAction.TEMPORARY_ROLE_ASSIGNED: ActivityType.ROLE_ASSIGNED,
    AuditAction.ROLE_REINSTATED: ActivityType.ROLE_ASSIGNED,
    AuditAction.ROLE_REVOKE: ActivityType.ROLE_REVOKED,
    AuditAction.ROLE_EXPIRED: ActivityType.ROLE_REVOKED,
    AuditAction.ROLE_SUSPENDED: ActivityType.ROLE_REVOKED,
    AuditAction.PERMISSION_GRANT: ActivityType.PERMISSION_CHANGED,
    AuditAction.PERMISSION_REVOKE: ActivityType.PERMISSION_CHANGED,
}


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class AuditTrail:
    """
    Writes and reads the audit and activity trail.

    Usage:
        audit = AuditTrail(session)
        before = snapshot(assignment)
        assignment.status = AssignmentStatus.REVOKED
        await session.flush()
        await audit.record(
            AuditAction.ROLE_REVOKE,
            "role_assignments",
            assignment.id,
            before=before,
            after=assignment,
            actor_id=manager_id,
            subject_id=assignment.principal_id,
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        action: AuditAction,
        entity_name: str,
        record_id: uuid.UUID,
        *,
        before: Any = None,
        after: Any = None,
        actor_id: Optional[uuid.UUID] = None,
        subject_id: Optional[uuid.UUID] = None,
        context: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[AuditRecord]:
        """
        Write one audit record (and its activity record, if curated).

        Args:
            action: The audit action tag
            entity_name: Table name of the tracked entity
            record_id: Primary identifier of the tracked row
            before: Snapshot dict (or instance) before the mutation, None for creates
            after: Snapshot dict (or instance) after the mutation
            actor_id: Acting principal, None for system work
            subject_id: Principal whose privileges changed; defaults to the
                row's principal_id when it has one
            context: Extra structured data stored with the record
            description: Human description for the activity feed

        Returns:
            The flushed AuditRecord, or None if it could not be written
        """
        try:
            before_state = self._state(before)
            after_state = self._state(after)
            subject = subject_id or self._principal_in(after_state) or self._principal_in(before_state)

            audit = AuditRecord(
                id=generate_uuid(),
                entity_name=entity_name,
                record_id=record_id,
                action=action.value,
                before_state=before_state,
                after_state=after_state,
                actor_id=actor_id,
                subject_id=subject,
                context=serialize_value(self._context(context)),
                created_at=utcnow(),
            )
            staged: List[Any] = [audit]

            # Catalog actions have no subject; their activity goes to the actor
            activity_type = ACTIVITY_FOR_ACTION.get(action)
            activity_principal = subject or actor_id
            if activity_type is not None and activity_principal is not None:
                staged.append(
                    ActivityRecord(
                        id=generate_uuid(),
                        principal_id=activity_principal,
                        activity_type=activity_type.value,
                        description=description or f"{action.value} on {entity_name}",
                        details=serialize_value({
                            "entity_name": entity_name,
                            "record_id": record_id,
                            "action": action.value,
                            "actor_id": actor_id,
                            "audit_id": audit.id,
                            "changes": changed_fields(before_state or {}, after_state or {}),
                        }),
                        created_at=audit.created_at,
                    )
                )
        except Exception as exc:
            await self._divert(exc, action, entity_name, record_id, actor_id)
            return None

        # The mutation itself is flushed outside the savepoint so its own
        # errors still reach the caller
        await self.session.flush()
        try:
            async with self.session.begin_nested():
                self.session.add_all(staged)
                await self.session.flush()
        except SQLAlchemyError as exc:
            await self._divert(exc, action, entity_name, record_id, actor_id)
            return None
        return audit

    def _state(self, value: Any) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        if isinstance(value, dict):
            return serialize_value(value)
        return serialize_value(snapshot(value))

    @staticmethod
    def _principal_in(state: Optional[Dict[str, Any]]) -> Optional[uuid.UUID]:
        if not state:
            return None
        return _as_uuid(state.get("principal_id"))

    @staticmethod
    def _context(context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = dict(context or {})
        request_id = get_request_id()
        if request_id:
            merged.setdefault("request_id", request_id)
        return merged

    async def _divert(
        self,
        exc: Exception,
        action: Any,
        entity_name: str,
        record_id: Any,
        actor_id: Optional[uuid.UUID],
    ) -> None:
        await self.session.flush()
        action_tag = getattr(action, "value", str(action))
        details = {
            "action": action_tag,
            "entity_name": entity_name,
            "record_id": str(record_id),
            "actor_id": str(actor_id) if actor_id else None,
            "error": repr(exc),
        }
        failure_logger.error(
            "Audit record could not be written",
            exc_info=exc,
            extra=details,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(
                    ErrorLog(
                        id=generate_uuid(),
                        severity=ErrorSeverity.ERROR.value,
                        component="audit_trail",
                        message=f"Audit write failed for {action_tag} on {entity_name}",
                        details=details,
                        created_at=utcnow(),
                    )
                )
                await self.session.flush()
        except SQLAlchemyError:
            failure_logger.exception("Error log entry could not be written", extra=details)

    # Queries

    async def entity_history(
        self,
        entity_name: str,
        record_id: uuid.UUID,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """All audit records for one row, newest first."""
        query = (
            select(AuditRecord)
            .where(
                and_(
                    AuditRecord.entity_name == entity_name,
                    AuditRecord.record_id == record_id,
                )
            )
            .order_by(desc(AuditRecord.created_at))
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def search(
        self,
        entity_name: Optional[str] = None,
        record_id: Optional[uuid.UUID] = None,
        subject_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
        actions: Optional[List[AuditAction]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditRecord]:
        """
        Filter the audit stream.

        Args:
            entity_name: Only records for this table
            record_id: Only records for this row
            subject_id: Only records affecting this principal
            actor_id: Only records performed by this principal
            actions: Only these action tags
            since: Inclusive lower bound on created_at
            until: Inclusive upper bound on created_at
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            Matching AuditRecords, newest first
        """
        conditions = []
        if entity_name:
            conditions.append(AuditRecord.entity_name == entity_name)
        if record_id:
            conditions.append(AuditRecord.record_id == record_id)
        if subject_id:
            conditions.append(AuditRecord.subject_id == subject_id)
        if actor_id:
            conditions.append(AuditRecord.actor_id == actor_id)
        if actions:
            conditions.append(AuditRecord.action.in_([a.value for a in actions]))
        if since:
            conditions.append(AuditRecord.created_at >= since)
        if until:
            conditions.append(AuditRecord.created_at <= until)

        query = select(AuditRecord)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(AuditRecord.created_at)).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_records(
        self,
        entity_name: str,
        record_id: Optional[uuid.UUID] = None,
        action: Optional[AuditAction] = None,
    ) -> int:
        query = select(func.count(AuditRecord.id)).where(AuditRecord.entity_name == entity_name)
        if record_id:
            query = query.where(AuditRecord.record_id == record_id)
        if action:
            query = query.where(AuditRecord.action == action.value)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def activity_for(
        self,
        principal_id: uuid.UUID,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ActivityRecord]:
        """Activity feed of one principal, newest first."""
        query = select(ActivityRecord).where(ActivityRecord.principal_id == principal_id)
        if since:
            query = query.where(ActivityRecord.created_at >= since)
        if until:
            query = query.where(ActivityRecord.created_at <= until)
        query = query.order_by(desc(ActivityRecord.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())


PENDING_VIOLATIONS = "pending_identity_violations"


def record_identity_violation(
    session: Session,
    entity_name: str,
    record_id: Any,
    attempted_id: Any,
    subject_id: Optional[uuid.UUID] = None,
) -> None:
    """
    Audit a rejected identifier change as ID_MODIFICATION_ATTEMPT.

    Called from the synchronous flush guard. The record is inserted on its own
    connection so it survives the rollback of the rejected change. While the
    session holds an open transaction the insert waits in session.info until
    that transaction ends (see write_pending_violations); a write-locked
    database would otherwise refuse it.
    """
    values = {
        "id": generate_uuid(),
        "entity_name": entity_name,
        "record_id": _as_uuid(record_id) or generate_uuid(),
        "action": AuditAction.ID_MODIFICATION_ATTEMPT.value,
        "before_state": {"id": serialize_value(record_id)},
        "after_state": {"id": serialize_value(attempted_id)},
        "actor_id": session.info.get("actor_id"),
        "subject_id": subject_id,
        "context": serialize_value({"request_id": get_request_id()}),
        "created_at": utcnow(),
    }
    logger.warning(
        "Rejected identifier change",
        extra={
            "entity_name": entity_name,
            "record_id": str(record_id),
            "attempted_id": str(attempted_id),
        },
    )
    if session.in_transaction():
        session.info.setdefault(PENDING_VIOLATIONS, []).append(values)
    else:
        _insert_violation(session, values)


def write_pending_violations(session: Session) -> None:
    """Insert the violations queued while the session's transaction was open."""
    for values in session.info.pop(PENDING_VIOLATIONS, None) or ():
        _insert_violation(session, values)


def _insert_violation(session: Session, values: Dict[str, Any]) -> None:
    try:
        with session.get_bind().begin() as connection:
            connection.execute(insert(AuditRecord.__table__).values(**values))
    except Exception as exc:
        failure_logger.error(
            "Identity violation could not be audited",
            exc_info=exc,
            extra={"entity_name": values["entity_name"], "record_id": str(values["record_id"])},
        )
