"""
Delegation: authority for one principal to manage a bounded set of roles.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import (
    Base,
    TimestampMixin,
    SoftDeleteMixin,
    as_utc,
    generate_uuid,
    utcnow,
)


class Delegation(Base, TimestampMixin, SoftDeleteMixin):
    """
    The delegate may grant and revoke the listed role tags on the
    delegator's behalf, for as long as the delegator still outranks them.
    """

    __tablename__ = "role_delegations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    delegator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    delegate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_tags: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    scope: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    revoked_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    def is_current(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active or self.deleted_at is not None:
            return False
        return self.ends_at is None or as_utc(self.ends_at) > (now or utcnow())

    def __repr__(self) -> str:
        return f"<Delegation {self.delegator_id} -> {self.delegate_id} {self.role_tags}>"
