"""
Role catalog: creation, listing, soft delete and default seeding.
"""

import uuid
from typing import List, Optional, Union

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.assignments.holdings import find_role, require_role
from rolekeeper.kernel.errors import ConflictError, InvalidStateError, ValidationError
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.hierarchy import level_of, parse_role_tag
from rolekeeper.kernel.models import (
    AssignmentStatus,
    AuditAction,
    Role,
    RoleAssignment,
    RoleGrant,
    RoleTag,
    utcnow,
)
from rolekeeper.kernel.permissions.catalog import (
    ADMIN_PERMISSIONS,
    DEFAULT_ROLE_GRANTS,
    DEFAULT_ROLES,
    ROLE_RESOURCE,
)
from rolekeeper.kernel.permissions.permission_service import PermissionService

logger = get_logger(__name__)


class RoleService:
    """Service for managing the role catalog."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)
        self.permissions = PermissionService(session)

    async def create_role(
        self,
        name: str,
        role_tag: Union[str, RoleTag],
        actor_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> Role:
        """
        Create a role.

        Args:
            name: Display name, unique among non-deleted roles
            role_tag: Hierarchy tag, unique among non-deleted roles
            actor_id: Acting principal, None for system bootstrap
            description: Optional description
            is_system: Protect the role against deletion

        Returns:
            The created Role
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name must not be empty", field="name")
        tag = parse_role_tag(role_tag)
        await self.permissions.authorize(actor_id, ROLE_RESOURCE, "create", role_tag=tag)

        if await find_role(self.session, tag) is not None:
            raise ConflictError(f"A role tagged {tag.value} already exists", role_tag=tag.value)
        if await self._find_by_name(name) is not None:
            raise ConflictError(f"Role name {name} already exists", name=name)

        role = Role(
            name=name,
            tag=tag.value,
            description=description,
            is_system=is_system,
            is_active=True,
        )
        self.session.add(role)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Role {name} already exists", name=name) from exc

        await self.audit.record(
            AuditAction.CREATE,
            "roles",
            role.id,
            after=role,
            actor_id=actor_id,
            description=f"Role {name} created",
        )
        return role

    async def get_role(self, role_tag: Union[str, RoleTag]) -> Role:
        return await require_role(self.session, role_tag, must_be_active=False)

    async def list_roles(self, include_inactive: bool = False) -> List[Role]:
        """Non-deleted roles, highest level first."""
        query = select(Role).where(Role.deleted_at.is_(None))
        if not include_inactive:
            query = query.where(Role.is_active == True)
        result = await self.session.execute(query)
        return sorted(result.scalars().all(), key=lambda r: level_of(r.tag), reverse=True)

    async def soft_delete_role(
        self,
        role_tag: Union[str, RoleTag],
        actor_id: Optional[uuid.UUID] = None,
    ) -> Role:
        """
        Soft-delete a role and cascade to its assignments and grants.

        Each retired assignment and grant gets its own audit record.

        Raises:
            InvalidStateError: the role is a system role
        """
        tag = parse_role_tag(role_tag)
        await self.permissions.authorize(actor_id, ROLE_RESOURCE, "delete", role_tag=tag)
        role = await require_role(self.session, tag, must_be_active=False)
        if role.is_system:
            raise InvalidStateError("Cannot delete system roles", role_tag=tag.value)

        now = utcnow()

        assignments = await self.session.execute(
            select(RoleAssignment).where(
                and_(
                    RoleAssignment.role_id == role.id,
                    RoleAssignment.deleted_at.is_(None),
                )
            )
        )
        for assignment in assignments.scalars().all():
            before = snapshot(assignment)
            assignment.is_active = False
            assignment.status = AssignmentStatus.REVOKED.value
            assignment.deleted_at = now
            assignment.deleted_by = actor_id
            await self.session.flush()
            await self.audit.record(
                AuditAction.ROLE_REVOKE,
                "role_assignments",
                assignment.id,
                before=before,
                after=assignment,
                actor_id=actor_id,
                subject_id=assignment.principal_id,
                description=f"Role {tag.value} revoked (role deleted)",
                context={"role_tag": tag.value, "cascade": "role_deleted"},
            )

        grants = await self.session.execute(
            select(RoleGrant).where(
                and_(
                    RoleGrant.role_id == role.id,
                    RoleGrant.deleted_at.is_(None),
                )
            )
        )
        for grant in grants.scalars().all():
            before = snapshot(grant)
            grant.is_active = False
            grant.deleted_at = now
            grant.deleted_by = actor_id
            await self.session.flush()
            await self.audit.record(
                AuditAction.PERMISSION_REVOKE,
                "role_grants",
                grant.id,
                before=before,
                after=grant,
                actor_id=actor_id,
                context={"role_tag": tag.value, "cascade": "role_deleted"},
            )

        before = snapshot(role)
        role.is_active = False
        role.deleted_at = now
        role.deleted_by = actor_id
        await self.session.flush()
        await self.audit.record(
            AuditAction.SOFT_DELETE,
            "roles",
            role.id,
            before=before,
            after=role,
            actor_id=actor_id,
            description=f"Role {role.name} deleted",
        )
        logger.info("Role deleted", extra={"role_tag": tag.value, "actor_id": str(actor_id)})
        return role

    async def initialize_default_roles(self) -> List[Role]:
        """
        Create the seven built-in system roles. Idempotent.

        Returns:
            The roles created by this call (existing ones are skipped)
        """
        created = []
        for tag, name, description in DEFAULT_ROLES:
            if await find_role(self.session, tag) is not None:
                continue
            created.append(
                await self.create_role(name, tag, description=description, is_system=True)
            )
        return created

    async def initialize_default_catalog(self) -> None:
        """Built-in roles, administrative permissions and their default grants. Idempotent."""
        await self.initialize_default_roles()

        existing = {p.name for p in await self.permissions.list_permissions(include_inactive=True)}
        for name, resource, action, description in ADMIN_PERMISSIONS:
            if name not in existing:
                await self.permissions.create_permission(
                    name, resource, action, description=description, is_system=True
                )

        for tag, names in DEFAULT_ROLE_GRANTS.items():
            granted = {p.name for _, p in await self.permissions.role_permissions(tag)}
            for name in names:
                if name not in granted:
                    await self.permissions.grant_permission(tag, name)

    async def _find_by_name(self, name: str) -> Optional[Role]:
        result = await self.session.execute(
            select(Role).where(
                and_(
                    Role.name == name,
                    Role.deleted_at.is_(None),
                )
            )
        )
        return result.scalar_one_or_none()
