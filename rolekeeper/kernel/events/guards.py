"""
Flush guards for immutable state.

Registered on the ORM Session class, so every session (including the sync
session behind each AsyncSession) runs them before it flushes:

- a primary identifier may never change once the row exists; the attempt
  is rejected with IdentityMutationError and audited as ID_MODIFICATION_ATTEMPT
  once the session's transaction has ended
- audit and activity records may never be updated or deleted
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from rolekeeper.kernel.errors import IdentityMutationError, ImmutableRecordError
from rolekeeper.kernel.events.audit_trail import (
    record_identity_violation,
    write_pending_violations,
)
from rolekeeper.kernel.models.audit import ActivityRecord, AuditRecord
from rolekeeper.kernel.models.principal import Principal

IMMUTABLE_MODELS = (AuditRecord, ActivityRecord)


@event.listens_for(Session, "before_flush")
def guard_immutable_state(session: Session, flush_context, instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, IMMUTABLE_MODELS):
            raise ImmutableRecordError(f"{obj.__tablename__} rows cannot be deleted")

    for obj in session.dirty:
        if isinstance(obj, IMMUTABLE_MODELS):
            if session.is_modified(obj, include_collections=False):
                raise ImmutableRecordError(f"{obj.__tablename__} rows cannot be modified")
            continue
        _guard_identity(session, obj)


def _guard_identity(session: Session, obj) -> None:
    state = inspect(obj)
    mapper = state.mapper
    for column in mapper.primary_key:
        key = mapper.get_property_by_column(column).key
        history = state.attrs[key].history
        if not history.deleted or not history.added:
            continue
        old_id, new_id = history.deleted[0], history.added[0]
        if old_id == new_id:
            continue

        entity_name = mapper.local_table.name
        subject_id = old_id if isinstance(obj, Principal) else getattr(obj, "principal_id", None)
        record_identity_violation(session, entity_name, old_id, new_id, subject_id=subject_id)
        raise IdentityMutationError(entity_name, old_id, new_id)


@event.listens_for(Session, "after_transaction_end")
def flush_identity_violations(session: Session, transaction) -> None:
    # Only the outermost transaction releases the database lock
    if transaction.parent is None:
        write_pending_violations(session)
