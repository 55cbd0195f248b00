"""
Common schema types used across the API.
"""

from typing import Optional
from pydantic import BaseModel


class OperationResponse(BaseModel):
    """Outcome of an idempotent operation (revoke, expiration)."""

    status: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
