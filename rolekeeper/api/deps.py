"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.database import async_session_maker
from rolekeeper.kernel.assignments.holdings import get_principal
from rolekeeper.kernel.identity.jwt import verify_access_token
from rolekeeper.kernel.models.principal import Principal
from rolekeeper.kernel.permissions.permission_service import PermissionService
from rolekeeper.logging_config import bind_actor


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields database sessions; one transaction per request."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> Principal:
    """Get the calling principal from the bearer token or raise 401/403."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = await get_principal(db, payload.principal_id)
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Principal not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not principal.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Principal is deactivated",
        )

    # Attributed to this principal if the flush guard has to audit anything
    db.info["actor_id"] = principal.id
    bind_actor(principal.id)
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


class PermissionChecker:
    """
    Dependency class requiring an explicit permission of the caller.

    With allow_self, a caller reading its own data (path parameter
    principal_id) passes without the permission.

    Usage:
        @router.get("/audit/records")
        async def list_records(
            _: Annotated[bool, Depends(PermissionChecker("audit", "read"))],
            db: DbSession,
        ):
            ...
    """

    def __init__(self, resource: str, action: str, allow_self: bool = False):
        self.resource = resource
        self.action = action
        self.allow_self = allow_self

    async def __call__(
        self,
        request: Request,
        principal: CurrentPrincipal,
        db: DbSession,
    ) -> bool:
        if self.allow_self:
            target = request.path_params.get("principal_id")
            if target and str(principal.id) == str(target).lower():
                return True

        if not await PermissionService(db).has_permission(principal.id, self.resource, self.action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {self.resource}:{self.action}",
            )
        return True


# Convenience permission dependencies
RequireRoleReadOrSelf = Annotated[bool, Depends(PermissionChecker("role", "read", allow_self=True))]
RequireAuditReadOrSelf = Annotated[bool, Depends(PermissionChecker("audit", "read", allow_self=True))]
RequireAuditRead = Annotated[bool, Depends(PermissionChecker("audit", "read"))]
