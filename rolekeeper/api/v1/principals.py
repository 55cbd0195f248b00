"""
Principal lifecycle endpoints.

The identity provider owns credentials; it reports created, deactivated and
restored principals here so role state follows the account.
"""

import uuid

from fastapi import APIRouter

from rolekeeper.api.deps import CurrentPrincipal, DbSession, RequireRoleReadOrSelf
from rolekeeper.kernel.identity.principal_service import PrincipalService
from rolekeeper.schemas.principal import PrincipalEventRequest, PrincipalResponse

router = APIRouter()


@router.post("/events", response_model=PrincipalResponse)
async def handle_principal_event(
    data: PrincipalEventRequest,
    caller: CurrentPrincipal,
    db: DbSession,
):
    """Apply a lifecycle notification. Requires principal:manage."""
    principal = await PrincipalService(db).handle(data.notification, actor_id=caller.id)
    return PrincipalResponse.model_validate(principal)


@router.get("/{principal_id}", response_model=PrincipalResponse)
async def get_principal(
    principal_id: uuid.UUID,
    _: RequireRoleReadOrSelf,
    db: DbSession,
):
    principal = await PrincipalService(db).get(principal_id)
    return PrincipalResponse.model_validate(principal)
