"""
Kernel Data Models

Core SQLAlchemy models for the authorization engine.
"""

from rolekeeper.kernel.models.base import (
    Base,
    TimestampMixin,
    SoftDeleteMixin,
    as_utc,
    generate_uuid,
    utcnow,
)
from rolekeeper.kernel.models.principal import Principal
from rolekeeper.kernel.models.role import Role, RoleTag
from rolekeeper.kernel.models.permission import Permission, RoleGrant
from rolekeeper.kernel.models.assignment import RoleAssignment, AssignmentStatus
from rolekeeper.kernel.models.delegation import Delegation
from rolekeeper.kernel.models.scheduled_task import ScheduledTask, TaskType, TaskOutcome
from rolekeeper.kernel.models.audit import (
    AuditRecord,
    AuditAction,
    ActivityRecord,
    ActivityType,
    ErrorLog,
    ErrorSeverity,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "as_utc",
    "generate_uuid",
    "utcnow",
    # Principals
    "Principal",
    # Roles
    "Role",
    "RoleTag",
    # Permissions
    "Permission",
    "RoleGrant",
    # Assignments
    "RoleAssignment",
    "AssignmentStatus",
    # Delegation
    "Delegation",
    # Scheduled work
    "ScheduledTask",
    "TaskType",
    "TaskOutcome",
    # Audit
    "AuditRecord",
    "AuditAction",
    "ActivityRecord",
    "ActivityType",
    "ErrorLog",
    "ErrorSeverity",
]
