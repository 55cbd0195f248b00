"""
Principal lifecycle and bearer token verification.
"""

from rolekeeper.kernel.identity.principal_service import PrincipalService

__all__ = ["PrincipalService"]
