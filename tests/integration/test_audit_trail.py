"""Integration tests for the audit trail, the activity feed and the flush guards."""

import logging
import uuid
from collections import Counter

import pytest
from sqlalchemy import func, select, text

from rolekeeper.database import async_session_maker
from rolekeeper.kernel.errors import IdentityMutationError, ImmutableRecordError
from rolekeeper.kernel.events import audit_trail
from rolekeeper.kernel.models import (
    AuditAction,
    AuditRecord,
    ErrorLog,
    Principal,
    RoleTag,
)
from rolekeeper.logging_config import AUDIT_FAILURE_LOGGER


class TestAuditRecords:
    """Each mutation stages exactly one before/after record."""

    async def test_grant_and_revoke_snapshots(self, db_session, assignments, alice, bob):
        assignment = await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()
        await assignments.revoke(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        records = await assignments.audit.entity_history("role_assignments", assignment.id)
        by_action = {r.action: r for r in records}
        assert set(by_action) == {AuditAction.ROLE_GRANT.value, AuditAction.ROLE_REVOKE.value}

        grant = by_action[AuditAction.ROLE_GRANT.value]
        assert grant.before_state is None
        assert grant.after_state["id"] == str(assignment.id)
        assert grant.after_state["principal_id"] == str(alice.id)
        assert grant.after_state["status"] == "active"
        assert grant.actor_id == bob.id
        assert grant.subject_id == alice.id

        revoke = by_action[AuditAction.ROLE_REVOKE.value]
        assert revoke.before_state["status"] == "active"
        assert revoke.after_state["status"] == "revoked"
        assert revoke.after_state["deleted_by"] == str(bob.id)

    async def test_one_record_per_mutation(self, db_session, assignments, alice, bob):
        assignment = await assignments.grant(alice.id, RoleTag.USER, managed_by=bob.id)
        await assignments.revoke(alice.id, RoleTag.USER, managed_by=bob.id)
        await assignments.revoke(alice.id, RoleTag.USER, managed_by=bob.id)
        await db_session.commit()

        assert await assignments.audit.count_records("role_assignments", record_id=assignment.id) == 2

    async def test_rolled_back_mutation_leaves_no_record(self, db_session, assignments, alice, bob):
        assignment = await assignments.grant(alice.id, RoleTag.USER, managed_by=bob.id)
        assignment_id = assignment.id
        await db_session.rollback()

        assert await assignments.audit.count_records("role_assignments", record_id=assignment_id) == 0

    async def test_activity_feed(self, db_session, assignments, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await assignments.revoke(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        activity = await assignments.audit.activity_for(alice.id)
        kinds = Counter(a.activity_type for a in activity)
        assert kinds == {"create": 1, "role_assigned": 1, "role_revoked": 1}

        revoked = next(a for a in activity if a.activity_type == "role_revoked")
        assert revoked.details["actor_id"] == str(bob.id)
        assert revoked.details["changes"]["status"] == ["active", "revoked"]

    async def test_search_filters(self, db_session, assignments, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        by_actor = await assignments.audit.search(actor_id=bob.id)
        assert [r.action for r in by_actor] == [AuditAction.ROLE_GRANT.value]

        grants = await assignments.audit.search(
            subject_id=alice.id, actions=[AuditAction.ROLE_GRANT, AuditAction.ROLE_REVOKE]
        )
        assert len(grants) == 1


class TestFlushGuards:
    """Identifiers and audit rows are immutable."""

    async def test_identifier_change_is_rejected_and_audited(self, db_session, alice):
        original_id = alice.id

        async with async_session_maker() as session:
            principal = await session.get(Principal, original_id)
            principal.id = uuid.uuid4()
            with pytest.raises(IdentityMutationError) as excinfo:
                await session.flush()
            await session.rollback()

        assert excinfo.value.record_id == original_id

        async with async_session_maker() as session:
            result = await session.execute(
                select(AuditRecord).where(
                    AuditRecord.action == AuditAction.ID_MODIFICATION_ATTEMPT.value
                )
            )
            violation = result.scalar_one()
            assert violation.record_id == original_id
            assert violation.entity_name == "principals"
            assert violation.before_state == {"id": str(original_id)}
            assert await session.get(Principal, original_id) is not None

    async def test_identifier_change_inside_write_transaction_is_audited(self, db_session, alice):
        original_id = alice.id

        # The session already holds the database write lock when the guard fires
        async with async_session_maker() as session:
            principal = await session.get(Principal, original_id)
            principal.display_name = "Renamed"
            await session.flush()

            principal.id = uuid.uuid4()
            with pytest.raises(IdentityMutationError):
                await session.flush()

        async with async_session_maker() as session:
            violations = await session.scalar(
                select(func.count(AuditRecord.id)).where(
                    AuditRecord.action == AuditAction.ID_MODIFICATION_ATTEMPT.value
                )
            )
            assert violations == 1
            unchanged = await session.get(Principal, original_id)
            assert unchanged.display_name == "Alice"

    async def test_audit_record_cannot_be_modified(self, db_session, alice):
        record = (await db_session.execute(select(AuditRecord).limit(1))).scalar_one()
        record.entity_name = "tampered"

        with pytest.raises(ImmutableRecordError):
            await db_session.flush()
        await db_session.rollback()

    async def test_audit_record_cannot_be_deleted(self, db_session, alice):
        record = (await db_session.execute(select(AuditRecord).limit(1))).scalar_one()
        await db_session.delete(record)

        with pytest.raises(ImmutableRecordError):
            await db_session.flush()
        await db_session.rollback()


class TestAuditFailure:
    """A failed audit write never fails the mutation it describes."""

    async def test_failure_is_diverted(self, db_session, assignments, alice, bob, monkeypatch, caplog):
        def broken(value):
            raise RuntimeError("serializer unavailable")

        monkeypatch.setattr(audit_trail, "serialize_value", broken)
        caplog.set_level(logging.ERROR, logger=AUDIT_FAILURE_LOGGER)

        assignment = await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()
        monkeypatch.undo()

        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)
        assert await assignments.audit.count_records("role_assignments", record_id=assignment.id) == 0

        failures = [r for r in caplog.records if r.name == AUDIT_FAILURE_LOGGER]
        assert failures
        assert failures[0].action == AuditAction.ROLE_GRANT.value

        errors = (await db_session.execute(select(ErrorLog))).scalars().all()
        assert len(errors) == 1
        assert errors[0].component == "audit_trail"
        assert errors[0].details["record_id"] == str(assignment.id)

    async def test_rejected_insert_keeps_mutation(self, db_session, assignments, alice, bob, caplog):
        await db_session.execute(
            text(
                "CREATE TRIGGER reject_audit_records BEFORE INSERT ON audit_records "
                "BEGIN SELECT RAISE(ABORT, 'audit store unavailable'); END"
            )
        )
        await db_session.commit()
        caplog.set_level(logging.ERROR, logger=AUDIT_FAILURE_LOGGER)

        assignment = await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)
        assert await assignments.audit.count_records("role_assignments", record_id=assignment.id) == 0
        activity = await assignments.audit.activity_for(alice.id)
        assert "role_assigned" not in {a.activity_type for a in activity}

        failures = [r for r in caplog.records if r.name == AUDIT_FAILURE_LOGGER]
        assert failures
        assert failures[0].action == AuditAction.ROLE_GRANT.value

        errors = (await db_session.execute(select(ErrorLog))).scalars().all()
        assert len(errors) == 1
        assert "audit store unavailable" in errors[0].details["error"]
