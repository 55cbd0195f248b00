"""Integration tests for scheduled expiration of temporary roles."""

import uuid
from datetime import timedelta

from sqlalchemy import select

from rolekeeper.kernel.expiration.expiration_service import ExpirationService
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    AuditRecord,
    RoleTag,
    ScheduledTask,
    TaskOutcome,
    utcnow,
)
from rolekeeper.kernel.outcomes import OperationStatus


class TestExpirationProcessing:
    """Tests for ExpirationService.process_due and process_task."""

    async def test_temporary_role_expires(self, db_session, assignments, alice, bob):
        """assign_temporary for an hour, then process past the expiry."""
        assignment = await assignments.assign_temporary(
            alice.id, RoleTag.MANAGER, utcnow() + timedelta(hours=1), assigned_by=bob.id
        )
        await db_session.commit()
        assert await assignments.check(alice.id, RoleTag.MANAGER, include_higher_roles=False)

        summary = await ExpirationService(db_session).process_due(now=utcnow() + timedelta(hours=1, minutes=1))
        await db_session.commit()

        assert summary.processed == 1
        assert summary.expired == 1
        assert assignment.status == AssignmentStatus.EXPIRED
        assert assignment.is_active is False
        assert assignment.deleted_at is not None
        assert not await assignments.check(alice.id, RoleTag.MANAGER, include_higher_roles=False)

        actions = [r.action for r in await assignments.audit.search(record_id=assignment.id)]
        assert AuditAction.ROLE_EXPIRED.value in actions

    async def test_nothing_due_before_expiry(self, db_session, assignments, alice, bob):
        await assignments.assign_temporary(
            alice.id, RoleTag.EDITOR, utcnow() + timedelta(hours=1), assigned_by=bob.id
        )
        await db_session.commit()

        summary = await ExpirationService(db_session).process_due()
        assert summary.processed == 0
        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)

    async def test_reprocessing_is_noop(self, db_session, assignments, alice, bob):
        await assignments.assign_temporary(
            alice.id, RoleTag.EDITOR, utcnow() + timedelta(minutes=5), assigned_by=bob.id
        )
        await db_session.commit()
        later = utcnow() + timedelta(minutes=10)
        expirations = ExpirationService(db_session)

        first = await expirations.process_due(now=later)
        await db_session.commit()
        second = await expirations.process_due(now=later)

        assert first.expired == 1
        assert second.processed == 0

        task = (await db_session.execute(select(ScheduledTask))).scalar_one()
        redelivered = await expirations.process_task(task, now=later)
        assert redelivered.status == OperationStatus.ALREADY_PROCESSED

        expired_records = await assignments.audit.search(actions=[AuditAction.ROLE_EXPIRED])
        assert len(expired_records) == 1

    async def test_revoked_before_expiry_is_noop(self, db_session, assignments, alice, bob):
        await assignments.assign_temporary(
            alice.id, RoleTag.EDITOR, utcnow() + timedelta(minutes=5), assigned_by=bob.id
        )
        await assignments.revoke(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        summary = await ExpirationService(db_session).process_due(now=utcnow() + timedelta(minutes=10))
        await db_session.commit()

        assert summary.processed == 1
        assert summary.expired == 0
        assert summary.skipped == 1
        task = (await db_session.execute(select(ScheduledTask))).scalar_one()
        assert task.processed is True
        assert task.outcome == TaskOutcome.NOOP.value

    async def test_process_task_by_id_unknown(self, db_session):
        result = await ExpirationService(db_session).process_task_by_id(uuid.uuid4())
        assert result.status == OperationStatus.NOT_FOUND

    async def test_regrant_retires_expired_holding(self, db_session, assignments, alice, bob):
        """An expired-but-unprocessed assignment does not block a fresh grant."""
        first = await assignments.assign_temporary(
            alice.id, RoleTag.EDITOR, utcnow() + timedelta(hours=1), assigned_by=bob.id
        )
        await db_session.commit()

        # Simulate the worker lagging behind the clock
        first.expires_at = utcnow() - timedelta(seconds=1)
        await db_session.commit()
        assert not await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)

        second = await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        assert first.status == AssignmentStatus.EXPIRED
        assert second.id != first.id
        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)

        result = await db_session.execute(
            select(AuditRecord).where(AuditRecord.action == AuditAction.ROLE_EXPIRED.value)
        )
        assert result.scalar_one().record_id == first.id
