"""
Delegation subsystem.

A principal can authorize another to manage a bounded set of roles, always
strictly below the delegator's own level. Also hosts the scope-conflict
check that runs before any role assignment is finalized.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Union

from sqlalchemy import select, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.assignments.holdings import (
    current_holdings,
    max_level,
    require_active_principal,
)
from rolekeeper.kernel.errors import (
    ConflictError,
    NotFoundError,
    PrivilegeInsufficientError,
    ValidationError,
)
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.hierarchy import level_of, parse_role_tag
from rolekeeper.kernel.models import AuditAction, Delegation, RoleTag, as_utc, utcnow
from rolekeeper.kernel.outcomes import OperationResult, OperationStatus

logger = get_logger(__name__)


class DelegationService:
    """
    Service for delegated role administration.

    Usage:
        delegations = DelegationService(session)
        await delegations.delegate(admin.id, lead.id, ["editor", "user"])
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)

    async def delegate(
        self,
        delegator_id: uuid.UUID,
        delegate_id: uuid.UUID,
        role_tags: Iterable[Union[str, RoleTag]],
        scope: Optional[str] = None,
        ends_at: Optional[datetime] = None,
    ) -> Delegation:
        """
        Authorize delegate_id to manage role_tags on delegator_id's behalf.

        Args:
            delegator_id: Principal handing out authority
            delegate_id: Principal receiving it
            role_tags: Tags the delegate may grant and revoke
            scope: Optional boundary the delegation is limited to
            ends_at: Optional end of the delegation, must be in the future

        Returns:
            The created Delegation

        Raises:
            ValidationError: empty or unknown tags, self-delegation, past ends_at
            NotFoundError / InvalidStateError: either principal absent or inactive
            PrivilegeInsufficientError: a tag is not strictly below the delegator's level
        """
        tags: List[RoleTag] = []
        for raw in role_tags:
            tag = parse_role_tag(raw)
            if tag not in tags:
                tags.append(tag)
        if not tags:
            raise ValidationError("At least one role tag must be delegated")
        if delegator_id == delegate_id:
            raise ValidationError("A principal cannot delegate to itself")

        now = utcnow()
        ends_at = as_utc(ends_at)
        if ends_at is not None and ends_at <= now:
            raise ValidationError("Delegation end must be in the future", ends_at=ends_at.isoformat())

        await require_active_principal(self.session, delegator_id, "Delegator")
        await require_active_principal(self.session, delegate_id, "Delegate")

        delegator_level = await max_level(self.session, delegator_id, now)
        if delegator_level is None:
            raise PrivilegeInsufficientError("Delegator has no active roles")

        too_high = [t.value for t in tags if level_of(t) >= delegator_level]
        if too_high:
            raise PrivilegeInsufficientError(
                f"Cannot delegate roles at or above own level: {', '.join(too_high)}",
                role_tags=too_high,
                delegator_level=delegator_level,
            )

        delegation = Delegation(
            delegator_id=delegator_id,
            delegate_id=delegate_id,
            role_tags=[t.value for t in tags],
            scope=scope,
            ends_at=ends_at,
            is_active=True,
        )
        self.session.add(delegation)
        await self.session.flush()

        await self.audit.record(
            AuditAction.ROLE_DELEGATION_CREATED,
            "role_delegations",
            delegation.id,
            after=delegation,
            actor_id=delegator_id,
            subject_id=delegate_id,
        )

        logger.info(
            "Role management delegated",
            extra={
                "delegator_id": str(delegator_id),
                "delegate_id": str(delegate_id),
                "role_tags": delegation.role_tags,
            },
        )
        return delegation

    async def revoke_delegation(
        self,
        delegation_id: uuid.UUID,
        revoked_by: uuid.UUID,
    ) -> OperationResult:
        """
        End a delegation. Allowed for the delegator or anyone ranked above it.

        Revoking an absent or already-ended delegation is a no-op.
        """
        result = await self.session.execute(
            select(Delegation).where(Delegation.id == delegation_id)
        )
        delegation = result.scalar_one_or_none()
        if delegation is None or not delegation.is_active or delegation.deleted_at is not None:
            return OperationResult.not_found("Delegation not found or already revoked")

        if revoked_by != delegation.delegator_id:
            now = utcnow()
            revoker_level = await max_level(self.session, revoked_by, now)
            delegator_level = await max_level(self.session, delegation.delegator_id, now)
            if revoker_level is None or (
                delegator_level is not None and revoker_level <= delegator_level
            ):
                raise PrivilegeInsufficientError(
                    "Only the delegator or a higher-ranked principal can revoke a delegation"
                )

        before = snapshot(delegation)
        delegation.is_active = False
        delegation.deleted_at = utcnow()
        delegation.revoked_by = revoked_by
        await self.session.flush()

        await self.audit.record(
            AuditAction.ROLE_DELEGATION_REVOKED,
            "role_delegations",
            delegation.id,
            before=before,
            after=delegation,
            actor_id=revoked_by,
            subject_id=delegation.delegate_id,
        )
        return OperationResult(status=OperationStatus.APPLIED, record=delegation)

    async def get_delegation(self, delegation_id: uuid.UUID) -> Delegation:
        result = await self.session.execute(
            select(Delegation).where(Delegation.id == delegation_id)
        )
        delegation = result.scalar_one_or_none()
        if delegation is None:
            raise NotFoundError("Delegation not found", delegation_id=str(delegation_id))
        return delegation

    async def list_delegations(
        self,
        delegate_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[Delegation]:
        """Delegations held by a principal, newest first."""
        query = select(Delegation).where(Delegation.delegate_id == delegate_id)
        if not include_inactive:
            query = query.where(
                and_(
                    Delegation.is_active == True,
                    Delegation.deleted_at.is_(None),
                )
            )
        query = query.order_by(desc(Delegation.created_at))
        result = await self.session.execute(query)
        delegations = list(result.scalars().all())
        if include_inactive:
            return delegations
        now = utcnow()
        return [d for d in delegations if d.is_current(now)]

    async def covers(
        self,
        delegate_id: uuid.UUID,
        tag: Union[str, RoleTag],
        scope: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Whether delegate_id holds a current delegation for tag.

        The delegation only counts while its delegator is active and still
        strictly outranks the tag. A scoped delegation only covers grants
        within the same scope.
        """
        now = now or utcnow()
        role_tag = parse_role_tag(tag)
        for delegation in await self.list_delegations(delegate_id):
            if role_tag.value not in delegation.role_tags:
                continue
            if delegation.scope is not None and delegation.scope != scope:
                continue
            delegator_level = await max_level(self.session, delegation.delegator_id, now)
            if delegator_level is not None and level_of(role_tag) < delegator_level:
                return True
        return False

    async def check_conflicts(
        self,
        principal_id: uuid.UUID,
        tag: Union[str, RoleTag],
        scope: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Reject a grant that would give principal_id equal-or-higher privilege
        in a second scope.

        Raises:
            ConflictError: principal already holds a live role at or above
                tag's level under a different scope
        """
        target_level = level_of(tag)
        for holding in await current_holdings(self.session, principal_id, now):
            if holding.level < target_level:
                continue
            if (holding.assignment.scope or None) != (scope or None):
                raise ConflictError(
                    f"Principal already holds {holding.role.tag} in scope "
                    f"{holding.assignment.scope or 'global'}",
                    role_tag=holding.role.tag,
                    scope=holding.assignment.scope,
                )
