"""
Error taxonomy for authorization operations.

Every error carries the HTTP status it maps to, so the API layer can
translate it without knowing the individual kinds.
"""

import uuid
from typing import Any, Optional


class AuthorizationError(Exception):
    """Base class for all domain errors raised by the kernel services."""

    status_code: int = 400
    code: str = "authorization_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(AuthorizationError):
    """Principal, role, permission, delegation or assignment is absent."""

    status_code = 404
    code = "not_found"


class ConflictError(AuthorizationError):
    """Duplicate live assignment, grant or catalog entry."""

    status_code = 409
    code = "conflict"


class PrivilegeInsufficientError(AuthorizationError):
    """Acting principal does not outrank the role it is trying to manage."""

    status_code = 403
    code = "privilege_insufficient"


class InvalidStateError(AuthorizationError):
    """Target is inactive, soft-deleted or protected."""

    status_code = 409
    code = "invalid_state"


class ValidationError(AuthorizationError):
    """Malformed input: unknown tag, blank resource/action, non-future expiry."""

    status_code = 422
    code = "validation_error"


class FatalError(AuthorizationError):
    """Integrity violation that must never be retried."""

    status_code = 500
    code = "fatal"


class IdentityMutationError(FatalError):
    """Raised when a flush would change the primary identifier of a row."""

    code = "identity_mutation"

    def __init__(
        self,
        entity_name: str,
        record_id: Optional[uuid.UUID],
        attempted_id: Optional[uuid.UUID],
    ):
        super().__init__(
            f"Primary identifier of {entity_name} {record_id} is immutable",
            entity_name=entity_name,
            record_id=str(record_id),
            attempted_id=str(attempted_id),
        )
        self.entity_name = entity_name
        self.record_id = record_id
        self.attempted_id = attempted_id


class ImmutableRecordError(FatalError):
    """Raised when a flush would update or delete an audit or activity record."""

    code = "immutable_record"
