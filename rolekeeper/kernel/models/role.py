"""
Role model and the closed set of role tags.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import Base, TimestampMixin, SoftDeleteMixin, generate_uuid


class RoleTag(str, Enum):
    """Closed set of role tags. Each maps to one hierarchy level."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    MODERATOR = "moderator"
    EDITOR = "editor"
    USER = "user"
    GUEST = "guest"


class Role(Base, TimestampMixin, SoftDeleteMixin):
    """
    A named bundle of permissions.

    The tag determines the hierarchy level. Name and tag are each unique
    among non-deleted roles, so a tag always resolves to a single live role.
    """

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    tag: Mapped[RoleTag] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # System roles cannot be deleted
    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
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
            "uq_roles_name_live",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_roles_tag_live",
            "tag",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Role {self.name} ({self.tag})>"
