"""
Immutable audit and activity records.

Both tables are append-only. The flush guard in kernel.events.guards
rejects updates and deletes of these rows.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rolekeeper.kernel.models.base import Base, generate_uuid, utcnow


class AuditAction(str, Enum):
    """Action tags written to the audit trail."""

    # Generic entity mutations
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SOFT_DELETE = "SOFT_DELETE"
    RESTORE = "RESTORE"

    # Role holdings
    ROLE_GRANT = "ROLE_GRANT"
    ROLE_REVOKE = "ROLE_REVOKE"
    TEMPORARY_ROLE_ASSIGNED = "TEMPORARY_ROLE_ASSIGNED"
    ROLE_EXPIRATION_SCHEDULED = "ROLE_EXPIRATION_SCHEDULED"
    ROLE_EXPIRED = "ROLE_EXPIRED"
    ROLE_SUSPENDED = "ROLE_SUSPENDED"
    ROLE_REINSTATED = "ROLE_REINSTATED"

    # Delegation
    ROLE_DELEGATION_CREATED = "ROLE_DELEGATION_CREATED"
    ROLE_DELEGATION_REVOKED = "ROLE_DELEGATION_REVOKED"

    # Permission grants
    PERMISSION_GRANT = "PERMISSION_GRANT"
    PERMISSION_REVOKE = "PERMISSION_REVOKE"

    # Integrity
    ID_MODIFICATION_ATTEMPT = "ID_MODIFICATION_ATTEMPT"


class ActivityType(str, Enum):
    """User-facing activity kinds (a curated subset of audit actions)."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REVOKED = "role_revoked"
    PERMISSION_CHANGED = "permission_changed"


class ErrorSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditRecord(Base):
    """Before/after snapshot of one tracked mutation."""

    __tablename__ = "audit_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    entity_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
    )
    action: Mapped[AuditAction] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    before_state: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    after_state: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )

    # Acting principal (None for system work such as expiration)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    # Principal whose privileges the mutation affected
    subject_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    context: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_audit_records_entity", "entity_name", "record_id"),
        Index("ix_audit_records_subject_time", "subject_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditRecord {self.action} {self.entity_name}:{self.record_id}>"


class ActivityRecord(Base):
    """User-facing history entry scoped to one principal."""

    __tablename__ = "activity_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
    )
    activity_type: Mapped[ActivityType] = mapped_column(
        String(50),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_activity_records_principal_time", "principal_id", "created_at"),
    )


class ErrorLog(Base):
    """Secondary error channel, used when an audit record cannot be written."""

    __tablename__ = "error_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    severity: Mapped[ErrorSeverity] = mapped_column(
        String(20),
        nullable=False,
    )
    component: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
