"""
Audit trail, snapshots, lifecycle notifications and flush guards.

Importing this package registers the flush guards.
"""

from rolekeeper.kernel.events.audit_trail import AuditTrail, record_identity_violation
from rolekeeper.kernel.events.snapshots import changed_fields, serialize_value, snapshot
from rolekeeper.kernel.events import guards  # noqa: F401
from rolekeeper.kernel.events.event_types import (
    PrincipalCreated,
    PrincipalDeactivated,
    PrincipalEvent,
    PrincipalRestored,
)

__all__ = [
    "AuditTrail",
    "record_identity_violation",
    "changed_fields",
    "serialize_value",
    "snapshot",
    "PrincipalCreated",
    "PrincipalDeactivated",
    "PrincipalEvent",
    "PrincipalRestored",
]
