"""
Permission resolver and permission catalog management.

Permissions are explicit-grant only: a principal can perform (resource,
action) iff one of its live roles carries a live grant for exactly that
pair. Hierarchy level never implies a permission, and there is no
super_admin bypass.
"""

import uuid
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.logging_config import get_logger
from rolekeeper.kernel.assignments.holdings import (
    current_holdings,
    live_assignment_conditions,
    max_level,
    require_role,
)
from rolekeeper.kernel.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PrivilegeInsufficientError,
    ValidationError,
)
from rolekeeper.kernel.events.audit_trail import AuditTrail
from rolekeeper.kernel.events.snapshots import snapshot
from rolekeeper.kernel.hierarchy import level_of, parse_role_tag
from rolekeeper.kernel.models import (
    AuditAction,
    Permission,
    Principal,
    Role,
    RoleAssignment,
    RoleGrant,
    RoleTag,
    utcnow,
)
from rolekeeper.kernel.outcomes import OperationResult, OperationStatus
from rolekeeper.kernel.permissions.catalog import PERMISSION_RESOURCE

logger = get_logger(__name__)


def _require_text(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} must not be empty", field=field)
    return cleaned


class PermissionService:
    """
    Service for checking and managing permissions.

    Usage:
        permissions = PermissionService(session)
        if await permissions.has_permission(user_id, "reports", "export"):
            ...
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)

    # Resolution (read-only)

    async def has_permission(
        self,
        principal_id: uuid.UUID,
        resource: str,
        action: str,
    ) -> bool:
        """
        Check if a principal may perform action on resource.

        True iff the principal is active and holds a live assignment whose
        live role has a live grant of a live permission for exactly
        (resource, action).

        Raises:
            ValidationError: resource or action is blank
        """
        resource = _require_text(resource, "resource")
        action = _require_text(action, "action")

        query = (
            select(RoleGrant.id)
            .join(Permission, Permission.id == RoleGrant.permission_id)
            .join(Role, Role.id == RoleGrant.role_id)
            .join(RoleAssignment, RoleAssignment.role_id == Role.id)
            .join(Principal, Principal.id == RoleAssignment.principal_id)
            .where(
                and_(
                    RoleAssignment.principal_id == principal_id,
                    Principal.is_active == True,
                    Principal.deleted_at.is_(None),
                    *live_assignment_conditions(utcnow()),
                    RoleGrant.is_active == True,
                    RoleGrant.deleted_at.is_(None),
                    Permission.is_active == True,
                    Permission.deleted_at.is_(None),
                    Permission.resource == resource,
                    Permission.action == action,
                )
            )
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.first() is not None

    async def has_any_role(
        self,
        principal_id: uuid.UUID,
        role_tags: Iterable[Union[str, RoleTag]],
    ) -> bool:
        """Exact tag membership among live holdings (not rank-aware)."""
        wanted = {parse_role_tag(t).value for t in role_tags}
        if not wanted:
            return False
        holdings = await current_holdings(self.session, principal_id)
        return any(h.role.tag in wanted for h in holdings)

    async def role_permissions(
        self,
        role_tag: Union[str, RoleTag],
    ) -> List[Tuple[RoleGrant, Permission]]:
        """Live grants of a role with their permissions, ordered by permission name."""
        role = await require_role(self.session, role_tag, must_be_active=False)
        query = (
            select(RoleGrant, Permission)
            .join(Permission, Permission.id == RoleGrant.permission_id)
            .where(
                and_(
                    RoleGrant.role_id == role.id,
                    RoleGrant.is_active == True,
                    RoleGrant.deleted_at.is_(None),
                    Permission.is_active == True,
                    Permission.deleted_at.is_(None),
                )
            )
            .order_by(Permission.name)
        )
        result = await self.session.execute(query)
        return [(grant, permission) for grant, permission in result.all()]

    async def authorize(
        self,
        actor_id: Optional[uuid.UUID],
        resource: str,
        action: str,
        role_tag: Optional[Union[str, RoleTag]] = None,
    ) -> None:
        """
        Gate an administrative operation.

        The actor needs the explicit (resource, action) permission and, for
        operations on a role, a level strictly above that role. An actor of
        None is the system bootstrap and passes.

        Raises:
            PrivilegeInsufficientError: either condition fails
        """
        if actor_id is None:
            return
        if not await self.has_permission(actor_id, resource, action):
            raise PrivilegeInsufficientError(
                f"Permission {resource}:{action} required",
                resource=resource,
                action=action,
            )
        if role_tag is not None:
            actor_level = await max_level(self.session, actor_id)
            target_level = level_of(role_tag)
            if actor_level is None or target_level >= actor_level:
                raise PrivilegeInsufficientError(
                    f"Cannot manage role {parse_role_tag(role_tag).value} at or above own level",
                    role_tag=parse_role_tag(role_tag).value,
                )

    # Catalog

    async def create_permission(
        self,
        name: str,
        resource: str,
        action: str,
        actor_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> Permission:
        """
        Register a new (resource, action) permission.

        Raises:
            ValidationError: blank name, resource or action
            PrivilegeInsufficientError: actor lacks permission:create
            ConflictError: name or (resource, action) already registered
        """
        name = _require_text(name, "name")
        resource = _require_text(resource, "resource")
        action = _require_text(action, "action")
        await self.authorize(actor_id, PERMISSION_RESOURCE, "create")

        result = await self.session.execute(
            select(Permission).where(
                and_(
                    Permission.deleted_at.is_(None),
                    or_(
                        Permission.name == name,
                        and_(Permission.resource == resource, Permission.action == action),
                    ),
                )
            )
        )
        if result.scalars().first() is not None:
            raise ConflictError(
                f"Permission {name} ({resource}:{action}) already exists",
                name=name,
            )

        permission = Permission(
            name=name,
            resource=resource,
            action=action,
            description=description,
            is_system=is_system,
            is_active=True,
        )
        self.session.add(permission)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Permission {name} already exists", name=name) from exc

        await self.audit.record(
            AuditAction.CREATE,
            "permissions",
            permission.id,
            after=permission,
            actor_id=actor_id,
        )
        return permission

    async def get_permission(self, name: str) -> Permission:
        result = await self.session.execute(
            select(Permission).where(
                and_(
                    Permission.name == name,
                    Permission.deleted_at.is_(None),
                )
            )
        )
        permission = result.scalar_one_or_none()
        if permission is None:
            raise NotFoundError(f"Permission {name} not found", name=name)
        return permission

    async def list_permissions(self, include_inactive: bool = False) -> List[Permission]:
        query = select(Permission).where(Permission.deleted_at.is_(None))
        if not include_inactive:
            query = query.where(Permission.is_active == True)
        result = await self.session.execute(query.order_by(Permission.name))
        return list(result.scalars().all())

    async def grant_permission(
        self,
        role_tag: Union[str, RoleTag],
        permission_name: str,
        granted_by: Optional[uuid.UUID] = None,
    ) -> RoleGrant:
        """
        Grant a permission to a role.

        Raises:
            PrivilegeInsufficientError: actor lacks permission:assign or does not outrank the role
            NotFoundError: role or permission absent
            InvalidStateError: role or permission inactive
            ConflictError: the role already holds a live grant of the permission
        """
        tag = parse_role_tag(role_tag)
        await self.authorize(granted_by, PERMISSION_RESOURCE, "assign", role_tag=tag)
        role = await require_role(self.session, tag)
        permission = await self.get_permission(permission_name)
        if not permission.is_active:
            raise InvalidStateError(f"Permission {permission.name} is not active")

        if await self._live_grant(role.id, permission.id) is not None:
            raise ConflictError(
                f"Permission {permission.name} already granted to {tag.value}",
                role_tag=tag.value,
                permission=permission.name,
            )

        grant = RoleGrant(
            role_id=role.id,
            permission_id=permission.id,
            granted_by=granted_by,
            granted_at=utcnow(),
            is_active=True,
        )
        self.session.add(grant)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Permission {permission.name} already granted to {tag.value}",
            ) from exc

        await self.audit.record(
            AuditAction.PERMISSION_GRANT,
            "role_grants",
            grant.id,
            after=grant,
            actor_id=granted_by,
            description=f"Permission {permission.name} granted to {tag.value}",
            context={"role_tag": tag.value, "permission": permission.name},
        )
        logger.info(
            "Permission granted",
            extra={"role_tag": tag.value, "permission": permission.name},
        )
        return grant

    async def revoke_permission(
        self,
        role_tag: Union[str, RoleTag],
        permission_name: str,
        revoked_by: Optional[uuid.UUID] = None,
    ) -> OperationResult:
        """Soft-delete a role's grant. Absent grants return a NOT_FOUND result."""
        tag = parse_role_tag(role_tag)
        await self.authorize(revoked_by, PERMISSION_RESOURCE, "assign", role_tag=tag)
        role = await require_role(self.session, tag, must_be_active=False)
        permission = await self.get_permission(permission_name)

        grant = await self._live_grant(role.id, permission.id)
        if grant is None:
            return OperationResult.not_found(
                f"Permission {permission.name} is not granted to {tag.value}"
            )

        before = snapshot(grant)
        grant.is_active = False
        grant.deleted_at = utcnow()
        grant.deleted_by = revoked_by
        await self.session.flush()

        await self.audit.record(
            AuditAction.PERMISSION_REVOKE,
            "role_grants",
            grant.id,
            before=before,
            after=grant,
            actor_id=revoked_by,
            description=f"Permission {permission.name} revoked from {tag.value}",
            context={"role_tag": tag.value, "permission": permission.name},
        )
        return OperationResult(status=OperationStatus.APPLIED, record=grant)

    async def _live_grant(
        self,
        role_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> Optional[RoleGrant]:
        result = await self.session.execute(
            select(RoleGrant).where(
                and_(
                    RoleGrant.role_id == role_id,
                    RoleGrant.permission_id == permission_id,
                    RoleGrant.deleted_at.is_(None),
                )
            )
        )
        return result.scalar_one_or_none()
