"""
Principal schemas.
"""

import uuid
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from rolekeeper.kernel.events.event_types import (
    PrincipalCreated,
    PrincipalDeactivated,
    PrincipalRestored,
)


class PrincipalResponse(BaseModel):
    """Principal response."""

    id: uuid.UUID
    email: str
    display_name: Optional[str]
    is_active: bool
    deleted_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class PrincipalEventRequest(BaseModel):
    """Lifecycle notification from the identity provider."""

    notification: Union[PrincipalCreated, PrincipalDeactivated, PrincipalRestored] = Field(
        ..., discriminator="event"
    )
