"""
API v1 routes.
"""

from fastapi import APIRouter

from rolekeeper.api.v1 import assignments, audit, delegations, principals, roles

router = APIRouter()

router.include_router(principals.router, prefix="/principals", tags=["Principals"])
router.include_router(assignments.router, prefix="/principals", tags=["Role Assignments"])
router.include_router(delegations.router, tags=["Delegations"])
router.include_router(roles.router, tags=["Roles"])
router.include_router(audit.router, prefix="/audit", tags=["Audit"])
