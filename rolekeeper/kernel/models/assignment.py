"""
Role assignments: principal holdings of roles.

Rows are append-only history. A holding moves through an explicit status;
retiring it also stamps deleted_at, which frees the (principal, role) pair
for a fresh assignment.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import (
    Base,
    TimestampMixin,
    SoftDeleteMixin,
    as_utc,
    generate_uuid,
    utcnow,
)


class AssignmentStatus(str, Enum):
    """Lifecycle of a role assignment."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"
    # Principal deactivated; reinstated on restore if not expired
    SUSPENDED = "suspended"


class RoleAssignment(Base, TimestampMixin, SoftDeleteMixin):
    """
    A (principal, role) holding, optionally time-bounded and scoped.

    At most one live (deleted_at IS NULL) row per (principal, role).
    """

    __tablename__ = "role_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id", ondelete="SET NULL"),
        nullable=True,  # System bootstrap assignments have no manager
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Optional boundary label (tenant, department); see DelegationService.check_conflicts
    scope: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )

    status: Mapped[AssignmentStatus] = mapped_column(
        String(20),
        default=AssignmentStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    deleted_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    __table_args__ = (
        Index(
            "uq_role_assignments_live",
            "principal_id",
            "role_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_role_assignments_expiry", "is_active", "expires_at"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= (now or utcnow())

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """Active, non-deleted and not past its expiry."""
        return (
            self.is_active
            and self.deleted_at is None
            and self.status == AssignmentStatus.ACTIVE
            and not self.is_expired(now)
        )

    def __repr__(self) -> str:
        return f"<RoleAssignment principal={self.principal_id} role={self.role_id} {self.status}>"
