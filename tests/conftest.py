import os

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RATE_LIMIT"] = ""
os.environ.pop("APPWRITE_ENDPOINT", None)
os.environ.pop("ROLE_PERMISSIONS_PATH", None)
os.environ.pop("SESSION_JWT_SECRET", None)

from typing import Annotated

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crm.core.database.base import Base
from crm.core.database.engine import enable_sqlite_foreign_keys, get_db
from crm.features.accounts.models import Account, account_members
from crm.features.deals.models import Deal
from crm.features.organizations.models import Organization
from crm.features.permissions.dependencies import get_claims_resolver
from crm.features.permissions.principal import Principal
from crm.features.permissions.roles import Role
from crm.features.permissions.table import RolePermissionTable
from crm.features.projects.models import Project, project_members
from crm.features.tasks.models import Task
from crm.features.users.models import User
from crm.features.users.resolver import ClaimsResolver
from crm.main import app

from tests.doubles import ORG_A, ORG_B, ORG_PLATFORM


@pytest.fixture
def table() -> RolePermissionTable:
    return RolePermissionTable.default()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory):
    """
    Two tenants plus a platform organization for the SUPER_ADMIN.

    org-a: owner-a, admin-a, user-a (member of acc-a1 and proj-a1), user2-a
    org-b: admin-b, with account acc-b1
    """
    async with session_factory() as session:
        session.add_all([
            Organization(id=ORG_A, name="Alpha", slug="alpha"),
            Organization(id=ORG_B, name="Beta", slug="beta"),
            Organization(id=ORG_PLATFORM, name="Platform", slug="platform"),
        ])
        await session.flush()
        session.add_all([
            User(id="owner-a", appwrite_id="aw-owner-a", email="owner@a.test", name="Owner A", role="OWNER", organization_id=ORG_A),
            User(id="admin-a", appwrite_id="aw-admin-a", email="admin@a.test", name="Admin A", role="ADMIN", organization_id=ORG_A),
            User(id="user-a", appwrite_id="aw-user-a", email="user@a.test", name="User A", role="USER", organization_id=ORG_A),
            User(id="user2-a", appwrite_id="aw-user2-a", email="user2@a.test", name="User Two A", role="USER", organization_id=ORG_A),
            User(id="admin-b", appwrite_id="aw-admin-b", email="admin@b.test", name="Admin B", role="ADMIN", organization_id=ORG_B),
            User(id="root", appwrite_id="aw-root", email="root@platform.test", name="Root", role="SUPER_ADMIN", organization_id=ORG_PLATFORM),
        ])
        await session.flush()
        session.add_all([
            Account(id="acc-a1", organization_id=ORG_A, name="Acme"),
            Account(id="acc-a2", organization_id=ORG_A, name="Globex"),
            Account(id="acc-b1", organization_id=ORG_B, name="Initech"),
        ])
        await session.flush()
        await session.execute(account_members.insert().values(account_id="acc-a1", user_id="user-a"))
        session.add_all([
            Deal(id="deal-a1", organization_id=ORG_A, account_id="acc-a1", assigned_user_id="user-a", name="Acme renewal"),
            Deal(id="deal-a2", organization_id=ORG_A, account_id="acc-a2", assigned_user_id="user2-a", name="Globex pilot"),
            Project(id="proj-a1", organization_id=ORG_A, account_id="acc-a1", name="Acme rollout"),
            Project(id="proj-a2", organization_id=ORG_A, name="Internal tooling"),
        ])
        await session.flush()
        await session.execute(project_members.insert().values(project_id="proj-a1", user_id="user-a"))
        session.add_all([
            Task(id="task-a1", organization_id=ORG_A, project_id="proj-a1", assigned_user_id="user-a", title="Kickoff"),
            Task(id="task-a2", organization_id=ORG_A, project_id="proj-a1", assigned_user_id="user2-a", title="Contract review"),
        ])
        await session.commit()


@pytest.fixture
def principals() -> dict[str, Principal]:
    """Principals matching the seeded users."""
    return {
        "owner-a": Principal("owner-a", ORG_A, Role.OWNER),
        "admin-a": Principal("admin-a", ORG_A, Role.ADMIN),
        "user-a": Principal("user-a", ORG_A, Role.USER, frozenset({"acc-a1"})),
        "user2-a": Principal("user2-a", ORG_A, Role.USER),
        "admin-b": Principal("admin-b", ORG_B, Role.ADMIN),
        "root": Principal("root", ORG_PLATFORM, Role.SUPER_ADMIN),
    }


@pytest_asyncio.fixture
async def client(session_factory, seed):
    """
    HTTP client against the app with an in-memory database.

    Callers are identified by trusted forwarded headers, which exercises the
    real header-mode claims resolver.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def header_claims_resolver(db: Annotated[AsyncSession, Depends(get_db)]) -> ClaimsResolver:
        return ClaimsResolver(db, trust_forwarded_headers=True)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_claims_resolver] = header_claims_resolver
    app.state.limiter.enabled = False
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
