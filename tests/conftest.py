"""
Pytest fixtures for rolekeeper tests.

Tests run against a temporary SQLite file so the API, the services and the
independent audit connection all see the same database.
"""

import os
import tempfile
import uuid
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio

# Point settings at a file-based SQLite database before any rolekeeper import
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-0123456789"
os.environ["DEBUG"] = "false"

from rolekeeper.config import get_settings

get_settings.cache_clear()

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from rolekeeper.database import async_session_maker, engine
from rolekeeper.kernel.assignments.role_assignment_service import RoleAssignmentService
from rolekeeper.kernel.events.event_types import PrincipalCreated
from rolekeeper.kernel.identity.jwt import create_access_token
from rolekeeper.kernel.identity.principal_service import PrincipalService
from rolekeeper.kernel.models import Base, Principal, RoleTag
from rolekeeper.kernel.roles.role_service import RoleService


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh schema per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test database. Tests commit explicitly."""
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> None:
    """Seven system roles, admin permissions and their default grants."""
    await RoleService(db_session).initialize_default_catalog()
    await db_session.commit()


PrincipalFactory = Callable[..., Awaitable[Principal]]


@pytest_asyncio.fixture
async def make_principal(db_session: AsyncSession, catalog) -> PrincipalFactory:
    """
    Register a principal, optionally holding a bootstrap role.

    Usage:
        bob = await make_principal("bob@example.com", RoleTag.ADMIN)
    """

    async def _make(email: str, role: Optional[RoleTag] = None) -> Principal:
        principal = await PrincipalService(db_session).handle_created(
            PrincipalCreated(
                principal_id=uuid.uuid4(),
                email=email,
                display_name=email.split("@")[0].title(),
            )
        )
        if role is not None:
            await RoleAssignmentService(db_session).bootstrap_role(principal.id, role)
        await db_session.commit()
        return principal

    return _make


@pytest_asyncio.fixture
async def alice(make_principal: PrincipalFactory) -> Principal:
    """A principal with no roles."""
    return await make_principal("alice@example.com")


@pytest_asyncio.fixture
async def bob(make_principal: PrincipalFactory) -> Principal:
    """An admin (level 6)."""
    return await make_principal("bob@example.com", RoleTag.ADMIN)


@pytest_asyncio.fixture
async def root(make_principal: PrincipalFactory) -> Principal:
    """The super_admin (level 7)."""
    return await make_principal("root@example.com", RoleTag.SUPER_ADMIN)


@pytest.fixture
def assignments(db_session: AsyncSession) -> RoleAssignmentService:
    return RoleAssignmentService(db_session)


@pytest.fixture
def headers_for() -> Callable[[Principal], dict]:
    """Bearer headers as the identity provider would issue them."""

    def _headers(principal: Principal) -> dict:
        token, _, _ = create_access_token(principal.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Async client over the ASGI app; shares the test database."""
    from rolekeeper.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp DB file after test run."""
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(TEST_DB_PATH + suffix)
        except OSError:
            pass
