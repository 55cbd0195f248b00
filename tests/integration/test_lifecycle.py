"""Integration tests for principal lifecycle and the role catalog."""

import uuid
from collections import Counter
from datetime import timedelta

import pytest

from rolekeeper.kernel.assignments.role_assignment_service import RoleAssignmentService
from rolekeeper.kernel.errors import (
    ConflictError,
    InvalidStateError,
    PrivilegeInsufficientError,
)
from rolekeeper.kernel.events.event_types import (
    PrincipalCreated,
    PrincipalDeactivated,
    PrincipalRestored,
)
from rolekeeper.kernel.identity.principal_service import PrincipalService
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    RoleTag,
    utcnow,
)
from rolekeeper.kernel.permissions.permission_service import PermissionService
from rolekeeper.kernel.roles.role_service import RoleService


@pytest.fixture
def principals(db_session) -> PrincipalService:
    return PrincipalService(db_session)


class TestPrincipalLifecycle:
    """Created / deactivated / restored notifications."""

    async def test_created_is_idempotent(self, db_session, principals, catalog):
        event = PrincipalCreated(principal_id=uuid.uuid4(), email="Erin@Example.com")
        first = await principals.handle(event)
        second = await principals.handle(event)
        await db_session.commit()

        assert first.id == second.id
        assert first.email == "erin@example.com"

    async def test_duplicate_email_conflicts(self, principals, alice):
        with pytest.raises(ConflictError):
            await principals.handle(
                PrincipalCreated(principal_id=uuid.uuid4(), email="alice@example.com")
            )

    async def test_registration_requires_permission(self, principals, alice):
        with pytest.raises(PrivilegeInsufficientError):
            await principals.handle(
                PrincipalCreated(principal_id=uuid.uuid4(), email="x@example.com"),
                actor_id=alice.id,
            )

    async def test_deactivate_suspends_and_restore_reinstates(self, db_session, principals, assignments, alice, bob):
        assignment = await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        await principals.handle(
            PrincipalDeactivated(principal_id=alice.id, reason="left team"), actor_id=bob.id
        )
        await db_session.commit()

        assert alice.is_active is False
        assert assignment.status == AssignmentStatus.SUSPENDED
        assert await assignments.effective_roles(alice.id) == []
        assert not await assignments.check(alice.id, RoleTag.GUEST)

        await principals.handle(PrincipalRestored(principal_id=alice.id), actor_id=bob.id)
        await db_session.commit()

        assert alice.is_active is True
        assert assignment.status == AssignmentStatus.ACTIVE
        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)

        actions = [r.action for r in await assignments.audit.search(record_id=assignment.id)]
        assert sorted(actions) == sorted([
            AuditAction.ROLE_GRANT.value,
            AuditAction.ROLE_SUSPENDED.value,
            AuditAction.ROLE_REINSTATED.value,
        ])

    async def test_restore_retires_lapsed_holdings(self, db_session, principals, assignments, alice, bob):
        assignment = await assignments.assign_temporary(
            alice.id, RoleTag.USER, utcnow() + timedelta(hours=1), assigned_by=bob.id
        )
        await db_session.commit()
        await principals.deactivate(alice.id, actor_id=bob.id)
        await db_session.commit()

        # Lapses while the account is suspended
        assignment.expires_at = utcnow() - timedelta(minutes=1)
        await db_session.commit()

        await principals.restore(alice.id, actor_id=bob.id)
        await db_session.commit()

        assert assignment.status == AssignmentStatus.EXPIRED
        assert assignment.deleted_at is not None
        assert await assignments.effective_roles(alice.id) == []

    async def test_deactivate_twice_is_noop(self, db_session, principals, alice):
        await principals.deactivate(alice.id)
        await db_session.commit()
        deleted_at = alice.deleted_at

        await principals.deactivate(alice.id)
        assert alice.deleted_at == deleted_at

    async def test_inactive_manager_cannot_grant(self, db_session, principals, assignments, alice, bob, root):
        await principals.deactivate(bob.id, actor_id=root.id)
        await db_session.commit()

        with pytest.raises(PrivilegeInsufficientError):
            await assignments.grant(alice.id, RoleTag.USER, managed_by=bob.id)


class TestRoleCatalog:
    """Creation, protection and soft-delete cascade of roles."""

    async def test_default_catalog(self, db_session, catalog):
        roles = await RoleService(db_session).list_roles()
        assert [r.tag for r in roles] == [
            "super_admin", "admin", "manager", "moderator", "editor", "user", "guest",
        ]
        assert all(r.is_system for r in roles)

    async def test_default_catalog_is_idempotent(self, db_session, catalog):
        service = RoleService(db_session)
        await service.initialize_default_catalog()
        await db_session.commit()
        assert len(await service.list_roles()) == 7

    async def test_duplicate_tag_conflicts(self, db_session, catalog, bob):
        with pytest.raises(ConflictError):
            await RoleService(db_session).create_role("Writers", RoleTag.EDITOR, actor_id=bob.id)

    async def test_create_requires_permission_and_rank(self, db_session, catalog, alice, bob):
        service = RoleService(db_session)
        with pytest.raises(PrivilegeInsufficientError):
            await service.create_role("Tinkerers", RoleTag.GUEST, actor_id=alice.id)
        with pytest.raises(PrivilegeInsufficientError):
            await service.create_role("Owners", RoleTag.ADMIN, actor_id=bob.id)

    async def test_system_role_is_protected(self, db_session, catalog, root):
        with pytest.raises(InvalidStateError):
            await RoleService(db_session).soft_delete_role(RoleTag.EDITOR, actor_id=root.id)

    async def test_soft_delete_cascades(self, db_session, db_engine):
        roles = RoleService(db_session)
        permissions = PermissionService(db_session)
        role = await roles.create_role("Reviewers", RoleTag.EDITOR)
        await permissions.create_permission("docs:review", "docs", "review")
        await permissions.grant_permission(RoleTag.EDITOR, "docs:review")
        principal = await PrincipalService(db_session).handle_created(
            PrincipalCreated(principal_id=uuid.uuid4(), email="rita@example.com")
        )
        assignments = RoleAssignmentService(db_session)
        assignment = await assignments.bootstrap_role(principal.id, RoleTag.EDITOR)
        await db_session.commit()
        assert await permissions.has_permission(principal.id, "docs", "review")

        await roles.soft_delete_role(RoleTag.EDITOR)
        await db_session.commit()

        assert role.deleted_at is not None
        assert assignment.status == AssignmentStatus.REVOKED
        assert not await permissions.has_permission(principal.id, "docs", "review")

        cascade = await roles.audit.search(
            actions=[AuditAction.ROLE_REVOKE, AuditAction.PERMISSION_REVOKE]
        )
        assert Counter(r.action for r in cascade) == {
            AuditAction.ROLE_REVOKE.value: 1,
            AuditAction.PERMISSION_REVOKE.value: 1,
        }

        # The tag is free again once the role is deleted
        replacement = await roles.create_role("Editors", RoleTag.EDITOR)
        await db_session.commit()
        assert replacement.id != role.id
        assert await permissions.role_permissions(RoleTag.EDITOR) == []
