"""
Shared queries over principals, roles and their live holdings.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.kernel.errors import InvalidStateError, NotFoundError
from rolekeeper.kernel.hierarchy import level_of, parse_role_tag
from rolekeeper.kernel.models import (
    AssignmentStatus,
    Principal,
    Role,
    RoleAssignment,
    RoleTag,
    as_utc,
    utcnow,
)


@dataclass
class RoleHolding:
    """A live assignment together with its role and hierarchy level."""

    assignment: RoleAssignment
    role: Role
    level: int


def live_assignment_conditions(now: datetime) -> list:
    """Filter for active, non-deleted, non-expired assignments of live roles."""
    return [
        RoleAssignment.is_active == True,
        RoleAssignment.deleted_at.is_(None),
        RoleAssignment.status == AssignmentStatus.ACTIVE.value,
        or_(RoleAssignment.expires_at.is_(None), RoleAssignment.expires_at > now),
        Role.is_active == True,
        Role.deleted_at.is_(None),
    ]


async def current_holdings(
    session: AsyncSession,
    principal_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> List[RoleHolding]:
    """
    Live holdings of an active principal, highest level first.

    Ties are broken by earliest assigned_at. An inactive or deleted
    principal holds nothing.
    """
    now = now or utcnow()
    query = (
        select(RoleAssignment, Role)
        .join(Role, Role.id == RoleAssignment.role_id)
        .join(Principal, Principal.id == RoleAssignment.principal_id)
        .where(
            and_(
                RoleAssignment.principal_id == principal_id,
                Principal.is_active == True,
                Principal.deleted_at.is_(None),
                *live_assignment_conditions(now),
            )
        )
    )
    result = await session.execute(query)
    holdings = [
        RoleHolding(assignment=assignment, role=role, level=level_of(role.tag))
        for assignment, role in result.all()
    ]
    holdings.sort(key=lambda h: (-h.level, as_utc(h.assignment.assigned_at)))
    return holdings


async def max_level(
    session: AsyncSession,
    principal_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Effective level of a principal, or None if it holds no live role."""
    holdings = await current_holdings(session, principal_id, now)
    return holdings[0].level if holdings else None


async def get_principal(session: AsyncSession, principal_id: uuid.UUID) -> Optional[Principal]:
    result = await session.execute(select(Principal).where(Principal.id == principal_id))
    return result.scalar_one_or_none()


async def require_active_principal(
    session: AsyncSession,
    principal_id: uuid.UUID,
    label: str = "Principal",
) -> Principal:
    """Load a principal, raising NotFound if absent and InvalidState if retired."""
    principal = await get_principal(session, principal_id)
    if principal is None:
        raise NotFoundError(f"{label} not found", principal_id=str(principal_id))
    if not principal.is_active or principal.deleted_at is not None:
        raise InvalidStateError(f"{label} is not active", principal_id=str(principal_id))
    return principal


async def find_role(session: AsyncSession, tag: Union[str, RoleTag]) -> Optional[Role]:
    """The non-deleted role carrying a tag, if any."""
    role_tag = parse_role_tag(tag)
    result = await session.execute(
        select(Role).where(
            and_(
                Role.tag == role_tag.value,
                Role.deleted_at.is_(None),
            )
        )
    )
    return result.scalar_one_or_none()


async def require_role(
    session: AsyncSession,
    tag: Union[str, RoleTag],
    must_be_active: bool = True,
) -> Role:
    role = await find_role(session, tag)
    if role is None:
        raise NotFoundError(f"Role {parse_role_tag(tag).value} not found", role_tag=str(tag))
    if must_be_active and not role.is_active:
        raise InvalidStateError(f"Role {role.tag} is not active", role_tag=role.tag)
    return role


async def live_assignment(
    session: AsyncSession,
    principal_id: uuid.UUID,
    role_id: uuid.UUID,
) -> Optional[RoleAssignment]:
    """The non-deleted assignment for a (principal, role) pair, expired or not."""
    result = await session.execute(
        select(RoleAssignment).where(
            and_(
                RoleAssignment.principal_id == principal_id,
                RoleAssignment.role_id == role_id,
                RoleAssignment.deleted_at.is_(None),
            )
        )
    )
    return result.scalar_one_or_none()
