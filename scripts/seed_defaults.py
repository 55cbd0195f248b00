"""
Seed the default role and permission catalog.

Creates the seven system roles, the administrative permissions and their
default grants. With --super-admin, also registers that principal (if the
identity provider has not reported it yet) and grants it super_admin.

Usage:
    python -m scripts.seed_defaults
    python -m scripts.seed_defaults --super-admin ops@example.com --principal-id <uuid>
"""

import argparse
import asyncio
import uuid
from typing import Optional

from sqlalchemy import select

from rolekeeper.config import get_settings
from rolekeeper.database import close_db, init_db, session_scope
from rolekeeper.kernel.assignments.role_assignment_service import RoleAssignmentService
from rolekeeper.kernel.events.event_types import PrincipalCreated
from rolekeeper.kernel.identity.principal_service import PrincipalService
from rolekeeper.kernel.models import Principal, RoleTag
from rolekeeper.kernel.roles.role_service import RoleService
from rolekeeper.logging_config import configure_logging, get_logger

log = get_logger(__name__)


async def seed(super_admin_email: Optional[str], principal_id: Optional[uuid.UUID]) -> None:
    await init_db()
    async with session_scope() as session:
        await RoleService(session).initialize_default_catalog()
        log.info("Default catalog ready")

        if super_admin_email:
            email = super_admin_email.strip().lower()
            result = await session.execute(select(Principal).where(Principal.email == email))
            principal = result.scalar_one_or_none()
            if principal is None:
                principal = await PrincipalService(session).handle_created(
                    PrincipalCreated(
                        principal_id=principal_id or uuid.uuid4(),
                        email=email,
                        display_name="Super Admin",
                    )
                )

            assignments = RoleAssignmentService(session)
            if await assignments.check(principal.id, RoleTag.SUPER_ADMIN, include_higher_roles=False):
                log.info("Principal already holds super_admin", extra={"email": email})
            else:
                await assignments.bootstrap_role(principal.id, RoleTag.SUPER_ADMIN)
                log.info(
                    "Granted super_admin",
                    extra={"email": email, "principal_id": str(principal.id)},
                )

    await close_db()


def main() -> None:
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    parser = argparse.ArgumentParser(description="Seed rolekeeper defaults")
    parser.add_argument("--super-admin", help="Email of the principal to make super_admin")
    parser.add_argument("--principal-id", type=uuid.UUID, help="Identity provider id for a new principal")
    args = parser.parse_args()

    asyncio.run(seed(args.super_admin, args.principal_id))


if __name__ == "__main__":
    main()
