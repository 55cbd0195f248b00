"""
Scheduled expiration of temporary role assignments.
"""

from rolekeeper.kernel.expiration.expiration_service import ExpirationRunSummary, ExpirationService

__all__ = ["ExpirationRunSummary", "ExpirationService"]
