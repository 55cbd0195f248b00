"""
Deferred work drained by an external periodic worker.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import Base, generate_uuid, utcnow


class TaskType(str, Enum):
    ROLE_EXPIRATION = "role_expiration"


class TaskOutcome(str, Enum):
    """What processing a task did."""

    EXPIRED = "expired"
    NOOP = "noop"


class ScheduledTask(Base):
    """
    A unit of deferred work.

    For ROLE_EXPIRATION the payload carries assignment_id, principal_id,
    role_id and role_tag. Processing is idempotent: the processed flag
    and an already-retired assignment both short-circuit.
    """

    __tablename__ = "scheduled_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    task_type: Mapped[TaskType] = mapped_column(
        String(50),
        nullable=False,
    )
    execute_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    outcome: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_scheduled_tasks_due", "processed", "execute_at"),
    )

    def __repr__(self) -> str:
        return f"<ScheduledTask {self.task_type} at {self.execute_at}>"
