"""
Scheduled expiration of temporary role assignments.

Assigning a temporary role enqueues a ROLE_EXPIRATION task. An external
periodic worker calls process_due(); processing is idempotent, so the
worker may deliver the same task more than once.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.config import get_settings
from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    Role,
    RoleAssignment,
    ScheduledTask,
    TaskOutcome,
    TaskType,
    as_utc,
    utcnow,
)
from rolekeeper.kernel.outcomes import OperationResult, OperationStatus

logger = get_logger(__name__)


@dataclass
class ExpirationRunSummary:
    """What one process_due() pass did."""

    processed: int = 0
    expired: int = 0
    skipped: int = 0
    task_ids: List[uuid.UUID] = field(default_factory=list)


class ExpirationService:
    """Schedules and processes ROLE_EXPIRATION tasks."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)

    async def schedule(
        self,
        assignment: RoleAssignment,
        role: Role,
        actor_id: Optional[uuid.UUID] = None,
    ) -> ScheduledTask:
        """
        Enqueue the retirement of a temporary assignment at its expires_at.

        Args:
            assignment: A flushed assignment with expires_at set
            role: The assigned role (its tag is kept in the payload)
            actor_id: Principal that created the temporary assignment

        Returns:
            The created ScheduledTask
        """
        task = ScheduledTask(
            task_type=TaskType.ROLE_EXPIRATION.value,
            execute_at=assignment.expires_at,
            payload={
                "assignment_id": str(assignment.id),
                "principal_id": str(assignment.principal_id),
                "role_id": str(role.id),
                "role_tag": role.tag,
            },
            processed=False,
        )
        self.session.add(task)
        await self.session.flush()

        await self.audit.record(
            AuditAction.ROLE_EXPIRATION_SCHEDULED,
            "scheduled_tasks",
            task.id,
            after=task,
            actor_id=actor_id,
            subject_id=assignment.principal_id,
        )
        return task

    async def due_tasks(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ScheduledTask]:
        """
        Unprocessed expiration tasks whose execute_at has passed, oldest first.

        Rows are locked with SKIP LOCKED where the backend supports it, so
        concurrent workers never pick up the same task.
        """
        now = now or utcnow()
        limit = limit or get_settings().expiration_batch_size
        query = (
            select(ScheduledTask)
            .where(
                and_(
                    ScheduledTask.task_type == TaskType.ROLE_EXPIRATION.value,
                    ScheduledTask.processed == False,
                    ScheduledTask.execute_at <= now,
                )
            )
            .order_by(ScheduledTask.execute_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def process_due(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> ExpirationRunSummary:
        """Process every due task. Caller commits."""
        now = now or utcnow()
        summary = ExpirationRunSummary()
        for task in await self.due_tasks(now, limit):
            result = await self.process_task(task, now)
            summary.processed += 1
            summary.task_ids.append(task.id)
            if result.applied and task.outcome == TaskOutcome.EXPIRED.value:
                summary.expired += 1
            else:
                summary.skipped += 1

        if summary.processed:
            logger.info(
                "Expiration run complete",
                extra={
                    "processed": summary.processed,
                    "expired": summary.expired,
                    "skipped": summary.skipped,
                },
            )
        return summary

    async def process_task(
        self,
        task: ScheduledTask,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Retire the assignment a task points at and mark the task processed.

        An already processed task returns ALREADY_PROCESSED; an assignment
        that is missing or no longer active leaves nothing to retire.
        """
        if task.processed:
            return OperationResult(
                status=OperationStatus.ALREADY_PROCESSED,
                record=task,
                message="Task already processed",
            )

        now = now or utcnow()
        outcome = TaskOutcome.NOOP
        assignment = await self._assignment_for(task)
        if assignment is not None and assignment.is_active and assignment.deleted_at is None:
            await self.retire(assignment, now)
            outcome = TaskOutcome.EXPIRED

        before = snapshot(task)
        task.processed = True
        task.processed_at = now
        task.outcome = outcome.value
        await self.session.flush()

        await self.audit.record(
            AuditAction.UPDATE,
            "scheduled_tasks",
            task.id,
            before=before,
            after=task,
            context={"outcome": outcome.value},
        )
        return OperationResult(status=OperationStatus.APPLIED, record=task)

    async def process_task_by_id(
        self,
        task_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        result = await self.session.execute(
            select(ScheduledTask).where(ScheduledTask.id == task_id)
        )
        task = result.scalar_one_or_none()
        if task is None:
            return OperationResult.not_found("Scheduled task not found")
        return await self.process_task(task, now)

    async def retire(
        self,
        assignment: RoleAssignment,
        now: Optional[datetime] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> RoleAssignment:
        """Mark an assignment expired: inactive, soft-deleted, audited ROLE_EXPIRED."""
        now = now or utcnow()
        before = snapshot(assignment)
        assignment.is_active = False
        assignment.status = AssignmentStatus.EXPIRED.value
        assignment.deleted_at = now
        assignment.deleted_by = actor_id
        await self.session.flush()

        await self.audit.record(
            AuditAction.ROLE_EXPIRED,
            "role_assignments",
            assignment.id,
            before=before,
            after=assignment,
            actor_id=actor_id,
            subject_id=assignment.principal_id,
            description="Temporary role expired",
            context={"expires_at": as_utc(assignment.expires_at)},
        )
        logger.info(
            "Role assignment expired",
            extra={
                "assignment_id": str(assignment.id),
                "principal_id": str(assignment.principal_id),
            },
        )
        return assignment

    async def _assignment_for(self, task: ScheduledTask) -> Optional[RoleAssignment]:
        raw_id = (task.payload or {}).get("assignment_id")
        if not raw_id:
            return None
        try:
            assignment_id = uuid.UUID(str(raw_id))
        except ValueError:
            logger.warning("Malformed expiration payload", extra={"task_id": str(task.id)})
            return None
        result = await self.session.execute(
            select(RoleAssignment).where(RoleAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()
