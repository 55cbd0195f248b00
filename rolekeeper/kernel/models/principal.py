"""
Principal model: an account the authorization engine reasons about.

Principals are created by the identity provider and only mirrored here;
this core deactivates and restores them.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import Base, TimestampMixin, SoftDeleteMixin, generate_uuid


class Principal(Base, TimestampMixin, SoftDeleteMixin):
    """An authenticated account known to the engine."""

    __tablename__ = "principals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
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

    def __repr__(self) -> str:
        return f"<Principal {self.email}>"
