"""
HTTP middleware.
"""

from rolekeeper.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
