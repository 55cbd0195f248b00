"""
Role assignment service: grant, revoke, temporary assignment and role queries.

Every mutation is gated by the hierarchy: the managing principal must hold
a live role strictly above the role being managed, or a current delegation
for it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.config import get_settings
from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.assignments.holdings import (
    RoleHolding,
    current_holdings,
    find_role,
    live_assignment,
    live_assignment_conditions,
    max_level,
    require_active_principal,
    require_role,
)
from rolekeeper.kernel.delegation.delegation_service import DelegationService
from rolekeeper.kernel.errors import (
    ConflictError,
    PrivilegeInsufficientError,
    ValidationError,
)
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.expiration.expiration_service import ExpirationService
from rolekeeper.kernel.hierarchy import level_of, parse_role_tag, tags_at_or_above
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    AuditRecord,
    Principal,
    Role,
    RoleAssignment,
    RoleTag,
    as_utc,
    utcnow,
)
from rolekeeper.kernel.outcomes import OperationResult, OperationStatus

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

GRANT_ACTIONS = frozenset({
    AuditAction.ROLE_GRANT.value,
    AuditAction.TEMPORARY_ROLE_ASSIGNED.value,
    AuditAction.ROLE_REINSTATED.value,
})
REVOKE_ACTIONS = frozenset({
    AuditAction.ROLE_REVOKE.value,
    AuditAction.ROLE_EXPIRED.value,
    AuditAction.ROLE_SUSPENDED.value,
})


@dataclass
class PrincipalRoleEntry:
    """A principal listed under a role, with the holding that put it there."""

    principal: Principal
    role: Role
    assignment: RoleAssignment


@dataclass
class RoleHistory:
    """Audit records of a principal's role assignments plus a summary."""

    from_time: datetime
    to_time: datetime
    records: List[AuditRecord] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)


class RoleAssignmentService:
    """
    Service for managing role holdings.

    Usage:
        service = RoleAssignmentService(session)
        await service.grant(alice.id, "manager", managed_by=bob.id)
        await service.check(alice.id, "editor")  # True, manager outranks editor
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)
        self.delegations = DelegationService(session)
        self.expirations = ExpirationService(session)

    async def grant(
        self,
        principal_id: uuid.UUID,
        role_tag: Union[str, RoleTag],
        managed_by: uuid.UUID,
        scope: Optional[str] = None,
    ) -> RoleAssignment:
        """
        Grant a role to a principal.

        Args:
            principal_id: Principal receiving the role
            role_tag: Tag of the role to grant
            managed_by: Acting principal
            scope: Optional boundary label for the holding

        Returns:
            The created RoleAssignment

        Raises:
            ValidationError: unknown role tag
            NotFoundError: principal or role absent
            InvalidStateError: principal or role inactive
            PrivilegeInsufficientError: manager does not outrank the role
            ConflictError: live assignment exists, or scope conflict
        """
        tag = parse_role_tag(role_tag)
        return await self._assign(
            principal_id,
            tag,
            managed_by,
            scope=scope,
            expires_at=None,
            action=AuditAction.ROLE_GRANT,
        )

    async def assign_temporary(
        self,
        principal_id: uuid.UUID,
        role_tag: Union[str, RoleTag],
        expires_at: datetime,
        assigned_by: uuid.UUID,
        scope: Optional[str] = None,
    ) -> RoleAssignment:
        """
        Grant a role that ends at expires_at and schedule its retirement.

        expires_at must be strictly in the future; this is checked before
        anything else. Privilege validation is identical to grant().
        """
        tag = parse_role_tag(role_tag)
        now = utcnow()
        expires_at = as_utc(expires_at)
        if expires_at is None or expires_at <= now:
            raise ValidationError(
                "Expiration time must be in the future",
                expires_at=expires_at.isoformat() if expires_at else None,
            )

        assignment = await self._assign(
            principal_id,
            tag,
            assigned_by,
            scope=scope,
            expires_at=expires_at,
            action=AuditAction.TEMPORARY_ROLE_ASSIGNED,
            now=now,
        )
        role = await require_role(self.session, tag)
        await self.expirations.schedule(assignment, role, actor_id=assigned_by)
        return assignment

    async def bootstrap_role(
        self,
        principal_id: uuid.UUID,
        role_tag: Union[str, RoleTag],
    ) -> RoleAssignment:
        """
        Grant a role with no managing principal.

        Used by the seed script to install the first super_admin, which no
        principal outranks. Not exposed over the API.
        """
        tag = parse_role_tag(role_tag)
        return await self._assign(
            principal_id,
            tag,
            None,
            scope=None,
            expires_at=None,
            action=AuditAction.ROLE_GRANT,
        )

    async def revoke(
        self,
        principal_id: uuid.UUID,
        role_tag: Union[str, RoleTag],
        managed_by: uuid.UUID,
    ) -> OperationResult:
        """
        Revoke a principal's live assignment of a role.

        Revoking an absent, already revoked or already expired assignment is
        a no-op and returns a NOT_FOUND result instead of raising.
        """
        tag = parse_role_tag(role_tag)
        now = utcnow()
        role = await find_role(self.session, tag)
        assignment = None
        if role is not None:
            assignment = await live_assignment(self.session, principal_id, role.id)

        # Privilege is checked before revealing whether anything was held
        scope = assignment.scope if assignment is not None else None
        await self._authorize_manager(managed_by, tag, scope=scope, now=now)

        if assignment is None or not assignment.is_live(now):
            return OperationResult.not_found(f"No active {tag.value} assignment to revoke")

        before = snapshot(assignment)
        assignment.is_active = False
        assignment.status = AssignmentStatus.REVOKED.value
        assignment.deleted_at = now
        assignment.deleted_by = managed_by
        await self.session.flush()

        await self.audit.record(
            AuditAction.ROLE_REVOKE,
            "role_assignments",
            assignment.id,
            before=before,
            after=assignment,
            actor_id=managed_by,
            subject_id=principal_id,
            description=f"Role {tag.value} revoked",
            context={"role_tag": tag.value},
        )
        logger.info(
            "Role revoked",
            extra={
                "principal_id": str(principal_id),
                "role_tag": tag.value,
                "managed_by": str(managed_by),
            },
        )
        return OperationResult(status=OperationStatus.APPLIED, record=assignment)

    async def check(
        self,
        principal_id: uuid.UUID,
        role_tag: Union[str, RoleTag],
        include_higher_roles: bool = True,
    ) -> bool:
        """
        Whether the principal holds role_tag.

        With include_higher_roles, any live role at or above role_tag's
        level counts; otherwise the tag must match exactly.
        """
        tag = parse_role_tag(role_tag)
        target_level = level_of(tag)
        for holding in await current_holdings(self.session, principal_id):
            if include_higher_roles and holding.level >= target_level:
                return True
            if holding.role.tag == tag.value:
                return True
        return False

    async def effective_roles(self, principal_id: uuid.UUID) -> List[RoleHolding]:
        """Live holdings, highest level first, ties by earliest assignment."""
        return await current_holdings(self.session, principal_id)

    async def effective_level(self, principal_id: uuid.UUID) -> Optional[int]:
        return await max_level(self.session, principal_id)

    async def list_principals_by_role(
        self,
        role_tag: Union[str, RoleTag],
        include_inactive: bool = False,
        include_higher_roles: bool = False,
    ) -> List[PrincipalRoleEntry]:
        """
        Principals holding a role, one entry each, newest assignment first.

        Args:
            role_tag: Role to list holders of
            include_inactive: Also list revoked, expired and suspended
                holdings and inactive principals
            include_higher_roles: Also list holders of higher-ranked roles

        Returns:
            One entry per principal carrying its highest matching holding
        """
        tag = parse_role_tag(role_tag)
        tags = tags_at_or_above(tag) if include_higher_roles else [tag]

        query = (
            select(RoleAssignment, Role, Principal)
            .join(Role, Role.id == RoleAssignment.role_id)
            .join(Principal, Principal.id == RoleAssignment.principal_id)
            .where(Role.tag.in_([t.value for t in tags]))
        )
        if not include_inactive:
            query = query.where(
                and_(
                    Principal.is_active == True,
                    Principal.deleted_at.is_(None),
                    *live_assignment_conditions(utcnow()),
                )
            )
        result = await self.session.execute(query)

        best: Dict[uuid.UUID, PrincipalRoleEntry] = {}
        for assignment, role, principal in result.all():
            current = best.get(principal.id)
            if current is None or self._outranks(assignment, role, current):
                best[principal.id] = PrincipalRoleEntry(
                    principal=principal,
                    role=role,
                    assignment=assignment,
                )

        return sorted(
            best.values(),
            key=lambda e: as_utc(e.assignment.assigned_at),
            reverse=True,
        )

    async def role_assignment_history(
        self,
        principal_id: uuid.UUID,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> RoleHistory:
        """
        Audit records of a principal's role assignments inside [from_time, to_time].

        Args:
            principal_id: Principal whose history to read
            from_time: Lower bound, defaults to the epoch
            to_time: Upper bound, defaults to now

        Returns:
            RoleHistory with records newest first and a summary of
            total_changes, grants, revokes and updates

        Raises:
            ValidationError: from_time is after to_time
        """
        from_time = as_utc(from_time) or EPOCH
        to_time = as_utc(to_time) or utcnow()
        if from_time > to_time:
            raise ValidationError("Start time must be before end time")

        records = await self.audit.search(
            entity_name="role_assignments",
            subject_id=principal_id,
            since=from_time,
            until=to_time,
            limit=get_settings().history_limit,
        )
        grants = sum(1 for r in records if r.action in GRANT_ACTIONS)
        revokes = sum(1 for r in records if r.action in REVOKE_ACTIONS)
        return RoleHistory(
            from_time=from_time,
            to_time=to_time,
            records=records,
            summary={
                "total_changes": len(records),
                "grants": grants,
                "revokes": revokes,
                "updates": len(records) - grants - revokes,
            },
        )

    # Internals

    async def _assign(
        self,
        principal_id: uuid.UUID,
        tag: RoleTag,
        managed_by: Optional[uuid.UUID],
        *,
        scope: Optional[str],
        expires_at: Optional[datetime],
        action: AuditAction,
        now: Optional[datetime] = None,
    ) -> RoleAssignment:
        now = now or utcnow()
        await require_active_principal(self.session, principal_id)
        if managed_by is not None:
            await self._authorize_manager(managed_by, tag, scope=scope, now=now)
        role = await require_role(self.session, tag)

        await self.delegations.check_conflicts(principal_id, tag, scope, now)

        existing = await live_assignment(self.session, principal_id, role.id)
        if existing is not None:
            if existing.is_expired(now) and existing.is_active:
                # Past its expiry but not yet drained by the worker
                await self.expirations.retire(existing, now, actor_id=managed_by)
            else:
                raise ConflictError(
                    f"Role {tag.value} already granted",
                    principal_id=str(principal_id),
                    role_tag=tag.value,
                )

        assignment = RoleAssignment(
            principal_id=principal_id,
            role_id=role.id,
            assigned_by=managed_by,
            assigned_at=now,
            expires_at=expires_at,
            scope=scope,
            status=AssignmentStatus.ACTIVE.value,
            is_active=True,
        )
        self.session.add(assignment)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Role {tag.value} already granted",
                principal_id=str(principal_id),
                role_tag=tag.value,
            ) from exc

        context: Dict[str, Any] = {"role_tag": tag.value}
        if expires_at is not None:
            context["expires_at"] = expires_at
        await self.audit.record(
            action,
            "role_assignments",
            assignment.id,
            after=assignment,
            actor_id=managed_by,
            subject_id=principal_id,
            description=f"Role {tag.value} assigned",
            context=context,
        )
        logger.info(
            "Role granted",
            extra={
                "principal_id": str(principal_id),
                "role_tag": tag.value,
                "managed_by": str(managed_by) if managed_by else None,
                "temporary": expires_at is not None,
            },
        )
        return assignment

    async def _authorize_manager(
        self,
        managed_by: uuid.UUID,
        tag: RoleTag,
        scope: Optional[str],
        now: datetime,
    ) -> int:
        """Return the manager's level if it may manage tag, else raise."""
        manager_level = await max_level(self.session, managed_by, now)
        if manager_level is None:
            raise PrivilegeInsufficientError(
                "Manager is not active or holds no active roles",
                managed_by=str(managed_by),
            )

        target_level = level_of(tag)
        if target_level < manager_level:
            return manager_level
        if await self.delegations.covers(managed_by, tag, scope, now):
            return manager_level

        raise PrivilegeInsufficientError(
            f"Cannot manage role {tag.value}: level {target_level} is not below {manager_level}",
            managed_by=str(managed_by),
            role_tag=tag.value,
        )

    @staticmethod
    def _outranks(assignment: RoleAssignment, role: Role, current: PrincipalRoleEntry) -> bool:
        level, current_level = level_of(role.tag), level_of(current.role.tag)
        if level != current_level:
            return level > current_level
        return as_utc(assignment.assigned_at) > as_utc(current.assignment.assigned_at)
