"""
Principal lifecycle service.

Consumes the identity provider's created / deactivated / restored
notifications. Deactivation suspends the principal's live role holdings;
restoring reinstates those that have not expired in the meantime.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.assignments.holdings import get_principal
from rolekeeper.kernel.errors import ConflictError, NotFoundError
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.event_types import (
    PrincipalCreated,
    PrincipalDeactivated,
    PrincipalEvent,
    PrincipalRestored,
)
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.expiration.expiration_service import ExpirationService
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    Principal,
    RoleAssignment,
    utcnow,
)
from rolekeeper.kernel.permissions.catalog import PRINCIPAL_RESOURCE
from rolekeeper.kernel.permissions.permission_service import PermissionService

logger = get_logger(__name__)


class PrincipalService:
    """
    Service for principal lifecycle.

    Usage:
        principals = PrincipalService(session)
        await principals.handle(PrincipalCreated(principal_id=pid, email="a@example.com"))
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)
        self.permissions = PermissionService(session)
        self.expirations = ExpirationService(session)

    async def handle(
        self,
        event: PrincipalEvent,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Principal:
        """Dispatch a lifecycle notification."""
        if isinstance(event, PrincipalCreated):
            return await self.handle_created(event, actor_id)
        if isinstance(event, PrincipalDeactivated):
            return await self.deactivate(event.principal_id, actor_id, reason=event.reason)
        if isinstance(event, PrincipalRestored):
            return await self.restore(event.principal_id, actor_id)
        raise TypeError(f"Unsupported principal event: {type(event).__name__}")

    async def handle_created(
        self,
        event: PrincipalCreated,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Principal:
        """
        Mirror a newly created principal. Idempotent on principal_id.

        Raises:
            ConflictError: the email belongs to a different principal
        """
        await self.permissions.authorize(actor_id, PRINCIPAL_RESOURCE, "manage")

        existing = await get_principal(self.session, event.principal_id)
        if existing is not None:
            return existing

        email = event.email.strip().lower()
        result = await self.session.execute(select(Principal).where(Principal.email == email))
        if result.scalar_one_or_none() is not None:
            raise ConflictError("Email already registered to another principal", email=email)

        principal = Principal(
            id=event.principal_id,
            email=email,
            display_name=event.display_name,
            is_active=True,
        )
        self.session.add(principal)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Principal already exists", email=email) from exc

        await self.audit.record(
            AuditAction.CREATE,
            "principals",
            principal.id,
            after=principal,
            actor_id=actor_id,
            subject_id=principal.id,
            description="Account registered",
        )
        logger.info("Principal registered", extra={"principal_id": str(principal.id)})
        return principal

    async def get(self, principal_id: uuid.UUID) -> Principal:
        principal = await get_principal(self.session, principal_id)
        if principal is None:
            raise NotFoundError("Principal not found", principal_id=str(principal_id))
        return principal

    async def deactivate(
        self,
        principal_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> Principal:
        """
        Soft-delete a principal and suspend its live role assignments.

        Deactivating an already inactive principal changes nothing.
        """
        await self.permissions.authorize(actor_id, PRINCIPAL_RESOURCE, "manage")
        principal = await self.get(principal_id)
        if not principal.is_active and principal.deleted_at is not None:
            return principal

        now = utcnow()
        for assignment in await self._assignments(principal_id, AssignmentStatus.ACTIVE):
            if not assignment.is_active:
                continue
            before = snapshot(assignment)
            assignment.is_active = False
            assignment.status = AssignmentStatus.SUSPENDED.value
            await self.session.flush()
            await self.audit.record(
                AuditAction.ROLE_SUSPENDED,
                "role_assignments",
                assignment.id,
                before=before,
                after=assignment,
                actor_id=actor_id,
                subject_id=principal_id,
                description="Role suspended (account deactivated)",
            )

        before = snapshot(principal)
        principal.is_active = False
        principal.deleted_at = now
        principal.deleted_by = actor_id
        await self.session.flush()
        await self.audit.record(
            AuditAction.SOFT_DELETE,
            "principals",
            principal.id,
            before=before,
            after=principal,
            actor_id=actor_id,
            subject_id=principal.id,
            description="Account deactivated",
            context={"reason": reason} if reason else None,
        )
        logger.info("Principal deactivated", extra={"principal_id": str(principal_id)})
        return principal

    async def restore(
        self,
        principal_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Principal:
        """
        Reactivate a principal.

        Suspended assignments come back unless they expired while suspended;
        those are retired as expired instead.
        """
        await self.permissions.authorize(actor_id, PRINCIPAL_RESOURCE, "manage")
        principal = await self.get(principal_id)
        if principal.is_active and principal.deleted_at is None:
            return principal

        now = utcnow()
        before = snapshot(principal)
        principal.is_active = True
        principal.deleted_at = None
        principal.deleted_by = None
        await self.session.flush()
        await self.audit.record(
            AuditAction.RESTORE,
            "principals",
            principal.id,
            before=before,
            after=principal,
            actor_id=actor_id,
            subject_id=principal.id,
            description="Account restored",
        )

        for assignment in await self._assignments(principal_id, AssignmentStatus.SUSPENDED):
            if assignment.is_expired(now):
                await self.expirations.retire(assignment, now, actor_id=actor_id)
                continue
            before = snapshot(assignment)
            assignment.is_active = True
            assignment.status = AssignmentStatus.ACTIVE.value
            await self.session.flush()
            await self.audit.record(
                AuditAction.ROLE_REINSTATED,
                "role_assignments",
                assignment.id,
                before=before,
                after=assignment,
                actor_id=actor_id,
                subject_id=principal_id,
                description="Role reinstated (account restored)",
            )

        logger.info("Principal restored", extra={"principal_id": str(principal_id)})
        return principal

    async def _assignments(
        self,
        principal_id: uuid.UUID,
        status: AssignmentStatus,
    ) -> List[RoleAssignment]:
        result = await self.session.execute(
            select(RoleAssignment).where(
                and_(
                    RoleAssignment.principal_id == principal_id,
                    RoleAssignment.status == status.value,
                    RoleAssignment.deleted_at.is_(None),
                )
            )
        )
        return list(result.scalars().all())
