"""
Result objects for operations that succeed without necessarily changing state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OperationStatus(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    ALREADY_PROCESSED = "already_processed"


@dataclass
class OperationResult:
    """Outcome of an idempotent operation (revoke, expiration processing)."""

    status: OperationStatus
    record: Optional[Any] = None
    message: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == OperationStatus.APPLIED

    @classmethod
    def not_found(cls, message: str) -> "OperationResult":
        return cls(status=OperationStatus.NOT_FOUND, message=message)
