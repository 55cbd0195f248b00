"""
Delegated role administration.
"""

from rolekeeper.kernel.delegation.delegation_service import DelegationService

__all__ = ["DelegationService"]
