"""Integration tests for DelegationService."""

from datetime import timedelta

import pytest

from rolekeeper.kernel.delegation.delegation_service import DelegationService
from rolekeeper.kernel.errors import (
    InvalidStateError,
    PrivilegeInsufficientError,
    ValidationError,
)
from rolekeeper.kernel.identity.principal_service import PrincipalService
from rolekeeper.kernel.models import AuditAction, RoleTag, utcnow
from rolekeeper.kernel.outcomes import OperationStatus


@pytest.fixture
def delegations(db_session) -> DelegationService:
    return DelegationService(db_session)


class TestDelegate:
    """delegate() only hands out authority strictly below the delegator."""

    async def test_admin_delegates_lower_roles(self, db_session, delegations, alice, bob):
        delegation = await delegations.delegate(bob.id, alice.id, ["editor", RoleTag.USER])
        await db_session.commit()

        assert delegation.delegator_id == bob.id
        assert delegation.delegate_id == alice.id
        assert delegation.role_tags == ["editor", "user"]

        records = await delegations.audit.search(record_id=delegation.id)
        assert [r.action for r in records] == [AuditAction.ROLE_DELEGATION_CREATED.value]

    async def test_own_level_rejected(self, delegations, alice, bob):
        with pytest.raises(PrivilegeInsufficientError):
            await delegations.delegate(bob.id, alice.id, [RoleTag.EDITOR, RoleTag.ADMIN])

    async def test_delegator_without_roles(self, delegations, alice, make_principal):
        nobody = await make_principal("nobody@example.com")
        with pytest.raises(PrivilegeInsufficientError):
            await delegations.delegate(nobody.id, alice.id, [RoleTag.GUEST])

    async def test_invalid_requests(self, delegations, alice, bob):
        with pytest.raises(ValidationError):
            await delegations.delegate(bob.id, alice.id, [])
        with pytest.raises(ValidationError):
            await delegations.delegate(bob.id, bob.id, [RoleTag.USER])
        with pytest.raises(ValidationError):
            await delegations.delegate(bob.id, alice.id, ["jester"])
        with pytest.raises(ValidationError):
            await delegations.delegate(
                bob.id, alice.id, [RoleTag.USER], ends_at=utcnow() - timedelta(days=1)
            )

    async def test_inactive_delegate(self, db_session, delegations, alice, bob):
        await PrincipalService(db_session).deactivate(alice.id)
        await db_session.commit()

        with pytest.raises(InvalidStateError):
            await delegations.delegate(bob.id, alice.id, [RoleTag.USER])


class TestDelegatedManagement:
    """A delegate may manage exactly the delegated tags."""

    async def test_delegate_grants_and_revokes(self, db_session, delegations, assignments, make_principal, bob):
        lead = await make_principal("lead@example.com", RoleTag.GUEST)
        carol = await make_principal("carol@example.com")
        await delegations.delegate(bob.id, lead.id, [RoleTag.EDITOR])
        await db_session.commit()

        # lead is only a guest, but holds a delegation for editor
        await assignments.grant(carol.id, RoleTag.EDITOR, managed_by=lead.id)
        await db_session.commit()
        assert await assignments.check(carol.id, RoleTag.EDITOR, include_higher_roles=False)

        with pytest.raises(PrivilegeInsufficientError):
            await assignments.grant(carol.id, RoleTag.USER, managed_by=lead.id)

        result = await assignments.revoke(carol.id, RoleTag.EDITOR, managed_by=lead.id)
        assert result.applied

    async def test_scoped_delegation(self, db_session, delegations, assignments, make_principal, bob):
        lead = await make_principal("lead@example.com", RoleTag.GUEST)
        carol = await make_principal("carol@example.com")
        await delegations.delegate(bob.id, lead.id, [RoleTag.USER], scope="emea")
        await db_session.commit()

        with pytest.raises(PrivilegeInsufficientError):
            await assignments.grant(carol.id, RoleTag.USER, managed_by=lead.id, scope="apac")
        await assignments.grant(carol.id, RoleTag.USER, managed_by=lead.id, scope="emea")

    async def test_revoked_delegation_stops_covering(self, db_session, delegations, assignments, make_principal, bob):
        lead = await make_principal("lead@example.com", RoleTag.GUEST)
        carol = await make_principal("carol@example.com")
        delegation = await delegations.delegate(bob.id, lead.id, [RoleTag.USER])
        await db_session.commit()

        result = await delegations.revoke_delegation(delegation.id, revoked_by=bob.id)
        await db_session.commit()
        assert result.applied

        with pytest.raises(PrivilegeInsufficientError):
            await assignments.grant(carol.id, RoleTag.USER, managed_by=lead.id)

    async def test_delegation_lapses_with_delegator_rank(self, db_session, delegations, assignments, make_principal, root):
        boss = await make_principal("boss@example.com", RoleTag.MANAGER)
        lead = await make_principal("lead@example.com", RoleTag.GUEST)
        carol = await make_principal("carol@example.com")
        await delegations.delegate(boss.id, lead.id, [RoleTag.EDITOR])
        await db_session.commit()

        await assignments.revoke(boss.id, RoleTag.MANAGER, managed_by=root.id)
        await db_session.commit()

        with pytest.raises(PrivilegeInsufficientError):
            await assignments.grant(carol.id, RoleTag.EDITOR, managed_by=lead.id)


class TestRevokeDelegation:
    """revoke_delegation() is idempotent and restricted."""

    async def test_revoke_twice(self, db_session, delegations, alice, bob):
        delegation = await delegations.delegate(bob.id, alice.id, [RoleTag.USER])
        await db_session.commit()

        first = await delegations.revoke_delegation(delegation.id, revoked_by=bob.id)
        await db_session.commit()
        second = await delegations.revoke_delegation(delegation.id, revoked_by=bob.id)

        assert first.status == OperationStatus.APPLIED
        assert second.status == OperationStatus.NOT_FOUND
        assert await delegations.list_delegations(alice.id) == []
        assert len(await delegations.list_delegations(alice.id, include_inactive=True)) == 1

    async def test_outsider_cannot_revoke(self, db_session, delegations, alice, bob, make_principal):
        peer = await make_principal("peer@example.com", RoleTag.MANAGER)
        delegation = await delegations.delegate(bob.id, alice.id, [RoleTag.USER])
        await db_session.commit()

        with pytest.raises(PrivilegeInsufficientError):
            await delegations.revoke_delegation(delegation.id, revoked_by=peer.id)

    async def test_higher_rank_can_revoke(self, db_session, delegations, alice, bob, root):
        delegation = await delegations.delegate(bob.id, alice.id, [RoleTag.USER])
        await db_session.commit()

        result = await delegations.revoke_delegation(delegation.id, revoked_by=root.id)
        assert result.applied
        assert delegation.revoked_by == root.id
