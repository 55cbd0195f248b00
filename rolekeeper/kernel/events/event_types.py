"""
Principal lifecycle notifications handed to the engine by the identity provider.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PrincipalCreated(BaseModel):
    """A new account exists at the identity provider."""

    event: Literal["created"] = "created"
    principal_id: uuid.UUID
    email: str = Field(..., min_length=3, max_length=255)
    display_name: Optional[str] = Field(None, max_length=255)
    occurred_at: datetime = Field(default_factory=_now)


class PrincipalDeactivated(BaseModel):
    """The account was disabled at the identity provider."""

    event: Literal["deactivated"] = "deactivated"
    principal_id: uuid.UUID
    reason: Optional[str] = Field(None, max_length=500)
    occurred_at: datetime = Field(default_factory=_now)


class PrincipalRestored(BaseModel):
    """A previously disabled account was re-enabled."""

    event: Literal["restored"] = "restored"
    principal_id: uuid.UUID
    occurred_at: datetime = Field(default_factory=_now)


PrincipalEvent = Union[PrincipalCreated, PrincipalDeactivated, PrincipalRestored]
