"""Integration tests for PermissionService: resolution and the permission catalog."""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from rolekeeper.kernel.errors import (
    ConflictError,
    NotFoundError,
    PrivilegeInsufficientError,
    ValidationError,
)
from rolekeeper.kernel.models import ActivityRecord, AuditAction, RoleTag
from rolekeeper.kernel.outcomes import OperationStatus
from rolekeeper.kernel.permissions.permission_service import PermissionService


@pytest.fixture
def permissions(db_session) -> PermissionService:
    return PermissionService(db_session)


@pytest_asyncio.fixture
async def reports_export(db_session, permissions, catalog):
    """A consumer-module permission granted to the editor role."""
    permission = await permissions.create_permission("reports:export", "reports", "export")
    await permissions.grant_permission(RoleTag.EDITOR, "reports:export")
    await db_session.commit()
    return permission


class TestHasPermission:
    """Permissions are explicit grants only."""

    async def test_granted_through_role(self, db_session, permissions, assignments, reports_export, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        assert await permissions.has_permission(alice.id, "reports", "export")
        assert not await permissions.has_permission(alice.id, "reports", "delete")

    async def test_rank_confers_nothing(self, db_session, permissions, assignments, reports_export, alice, bob):
        # Manager outranks editor but has no reports grant
        await assignments.grant(alice.id, RoleTag.MANAGER, managed_by=bob.id)
        await db_session.commit()

        assert not await permissions.has_permission(alice.id, "reports", "export")

    async def test_no_super_admin_bypass(self, permissions, reports_export, root):
        assert not await permissions.has_permission(root.id, "reports", "export")

    async def test_soft_deleted_grant(self, db_session, permissions, assignments, reports_export, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        result = await permissions.revoke_permission(RoleTag.EDITOR, "reports:export", revoked_by=bob.id)
        await db_session.commit()

        assert result.applied
        assert await permissions.role_permissions(RoleTag.EDITOR) == []
        assert await assignments.check(alice.id, RoleTag.EDITOR, include_higher_roles=False)
        assert not await permissions.has_permission(alice.id, "reports", "export")

    async def test_revoked_assignment(self, db_session, permissions, assignments, reports_export, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await assignments.revoke(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        await db_session.commit()

        assert not await permissions.has_permission(alice.id, "reports", "export")

    async def test_unknown_pair_is_false(self, permissions, alice):
        assert not await permissions.has_permission(alice.id, "warehouse", "teleport")

    @pytest.mark.parametrize("resource,action", [("", "read"), ("reports", "  ")])
    async def test_blank_input_is_validation_error(self, permissions, alice, resource, action):
        with pytest.raises(ValidationError):
            await permissions.has_permission(alice.id, resource, action)

    async def test_default_admin_permissions(self, permissions, bob):
        assert await permissions.has_permission(bob.id, "role", "create")
        assert await permissions.has_permission(bob.id, "audit", "read")


class TestHasAnyRole:
    """has_any_role is exact membership, not rank-aware."""

    async def test_exact_membership(self, db_session, permissions, assignments, alice, bob):
        await assignments.grant(alice.id, RoleTag.MANAGER, managed_by=bob.id)
        await db_session.commit()

        assert await permissions.has_any_role(alice.id, ["guest", "manager"])
        assert not await permissions.has_any_role(alice.id, [RoleTag.EDITOR, RoleTag.USER])
        assert not await permissions.has_any_role(alice.id, [])

    async def test_unknown_tag(self, permissions, alice):
        with pytest.raises(ValidationError):
            await permissions.has_any_role(alice.id, ["wizard"])


class TestCatalog:
    """Permission catalog operations and their authorization."""

    async def test_role_permissions_listing(self, permissions, catalog):
        pairs = await permissions.role_permissions(RoleTag.MANAGER)
        assert [p.name for _, p in pairs] == ["audit:read", "role:read"]

    async def test_create_permission_by_admin(self, db_session, permissions, bob):
        permission = await permissions.create_permission(
            "invoices:approve", "invoices", "approve", actor_id=bob.id
        )
        await db_session.commit()
        assert (await permissions.get_permission("invoices:approve")).id == permission.id

    async def test_create_permission_requires_permission(self, db_session, permissions, assignments, alice, bob):
        await assignments.grant(alice.id, RoleTag.MANAGER, managed_by=bob.id)
        await db_session.commit()

        with pytest.raises(PrivilegeInsufficientError):
            await permissions.create_permission("x:y", "x", "y", actor_id=alice.id)

    async def test_duplicate_resource_action(self, permissions, reports_export):
        with pytest.raises(ConflictError):
            await permissions.create_permission("reports:export-again", "reports", "export")

    async def test_grant_twice_conflicts(self, permissions, reports_export):
        with pytest.raises(ConflictError):
            await permissions.grant_permission(RoleTag.EDITOR, "reports:export")

    async def test_grant_unknown_permission(self, permissions, catalog):
        with pytest.raises(NotFoundError):
            await permissions.grant_permission(RoleTag.EDITOR, "nope:nope")

    async def test_grant_to_own_level_rejected(self, permissions, reports_export, bob):
        # bob (admin) may assign permissions, but only to roles below admin
        with pytest.raises(PrivilegeInsufficientError):
            await permissions.grant_permission(RoleTag.ADMIN, "reports:export", granted_by=bob.id)
        await permissions.grant_permission(RoleTag.MANAGER, "reports:export", granted_by=bob.id)

    async def test_revoke_missing_grant(self, permissions, reports_export):
        result = await permissions.revoke_permission(RoleTag.GUEST, "reports:export")
        assert result.status == OperationStatus.NOT_FOUND

    async def test_inactive_permission_not_listed(self, db_session, permissions, assignments, reports_export, alice, bob):
        await assignments.grant(alice.id, RoleTag.EDITOR, managed_by=bob.id)
        reports_export.is_active = False
        await db_session.commit()

        assert await permissions.role_permissions(RoleTag.EDITOR) == []
        assert not await permissions.has_permission(alice.id, "reports", "export")

    async def test_permission_change_activity_goes_to_actor(self, db_session, permissions, reports_export, bob):
        await permissions.grant_permission(RoleTag.MANAGER, "reports:export", granted_by=bob.id)
        await db_session.commit()

        changes = [
            a for a in await permissions.audit.activity_for(bob.id)
            if a.activity_type == "permission_changed"
        ]
        assert len(changes) == 1
        assert changes[0].details["action"] == AuditAction.PERMISSION_GRANT.value
        assert changes[0].details["actor_id"] == str(bob.id)

        # Seeded grants have no actor and leave no activity
        seeded = await permissions.audit.search(
            entity_name="role_grants", actions=[AuditAction.PERMISSION_GRANT]
        )
        assert any(r.actor_id is None for r in seeded)
        feed_total = await db_session.scalar(
            select(func.count(ActivityRecord.id)).where(
                ActivityRecord.activity_type == "permission_changed"
            )
        )
        assert feed_total == 1
