"""
Delegation endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, Query, status

from rolekeeper.api.deps import CurrentPrincipal, DbSession, RequireRoleReadOrSelf
from rolekeeper.kernel.delegation.delegation_service import DelegationService
from rolekeeper.schemas.common import OperationResponse
from rolekeeper.schemas.delegation import DelegationCreate, DelegationResponse

router = APIRouter()


@router.post(
    "/delegations",
    response_model=DelegationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_delegation(
    data: DelegationCreate,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Delegate management of roles below the caller's level to another principal."""
    delegation = await DelegationService(db).delegate(
        caller.id,
        data.delegate_id,
        data.role_tags,
        scope=data.scope,
        ends_at=data.ends_at,
    )
    return DelegationResponse.model_validate(delegation)


@router.delete("/delegations/{delegation_id}", response_model=OperationResponse)
async def revoke_delegation(
    delegation_id: uuid.UUID,
    caller: CurrentPrincipal,
    db: DbSession,
):
    result = await DelegationService(db).revoke_delegation(delegation_id, revoked_by=caller.id)
    return OperationResponse(status=result.status.value, message=result.message)


@router.get("/principals/{principal_id}/delegations", response_model=List[DelegationResponse])
async def list_delegations(
    principal_id: uuid.UUID,
    _: RequireRoleReadOrSelf,
    db: DbSession,
    include_inactive: bool = Query(False),
):
    """Delegations held by a principal."""
    delegations = await DelegationService(db).list_delegations(
        principal_id, include_inactive=include_inactive
    )
    return [DelegationResponse.model_validate(d) for d in delegations]
