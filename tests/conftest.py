"""Shared test fixtures for the Orgflow backend.

Provides:
- Async PostgreSQL test database (session-scoped engine, per-test rollback)
- FastAPI test client with overridden DB dependency and a scripted LLM
- Factory helpers for users, organizations, departments, roles and processes
"""

from __future__ import annotations

import os
import uuid

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("ENVIRONMENT", "development")

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from orgflow.core.security import create_access_token
from orgflow.models import Base
from orgflow.services.llm_client import LLMError

# ---------------------------------------------------------------------------
# Database engine
# ---------------------------------------------------------------------------


def _test_db_url() -> str:
    user = os.getenv("POSTGRES_USER", "orgflow")
    password = os.getenv("POSTGRES_PASSWORD", "orgflow")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("TEST_POSTGRES_DB", "orgflow_test")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine and all tables. Drops tables at teardown.

    Sync fixture with NullPool so every per-test connection is opened on
    the loop that is current for that test.
    """
    url = _test_db_url()
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async def _setup():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def _teardown():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    try:
        asyncio.run(_setup())
    except Exception as exc:
        asyncio.run(engine.dispose())
        pytest.skip(f"Test database not available ({exc})")

    yield engine

    asyncio.run(_teardown())


# ---------------------------------------------------------------------------
# Per-test transactional session (savepoint rollback pattern)
# ---------------------------------------------------------------------------


@pytest.fixture
async def db(test_engine):
    """Provide a transactional session that rolls back after each test.

    ``session.commit()`` in code under test releases the current savepoint;
    the listener opens a new one and the outer transaction is rolled back
    at teardown.
    """
    conn = await test_engine.connect()
    trans = await conn.begin()
    session = AsyncSession(bind=conn, expire_on_commit=False)

    await conn.begin_nested()

    @sa_event.listens_for(session.sync_session, "after_transaction_end")
    def _restart_savepoint(sess, transaction):
        if conn.closed or conn.invalidated:
            return
        if not conn.in_nested_transaction():
            conn.sync_connection.begin_nested()

    yield session

    await session.close()
    await trans.rollback()
    await conn.close()


# ---------------------------------------------------------------------------
# Scripted chat-completion client
# ---------------------------------------------------------------------------


class FakeLLM:
    """Stands in for ``ChatCompletionClient``; returns queued answers in order."""

    def __init__(self):
        self.responses: list[str | Exception] = []
        self.calls: list[dict] = []

    async def complete(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if not self.responses:
            raise LLMError("No scripted response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


@pytest.fixture
def fake_llm():
    return FakeLLM()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db, fake_llm):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from orgflow.api.v1.router import api_router
    from orgflow.config import settings
    from orgflow.core.rate_limit import limiter
    from orgflow.database import get_db

    test_app = FastAPI()
    test_app.state.llm_client = fake_llm
    test_app.state.limiter = limiter
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    async def _override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = _override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting during tests to avoid 429 responses."""
    from orgflow.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


async def create_user(db, *, email=None, display_name="Test User", is_active=True):
    """Insert a user into the test database."""
    from orgflow.models.user import User

    user = User(
        email=email or f"test-{uuid.uuid4().hex[:8]}@example.com",
        display_name=display_name,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def create_organization(db, *, name="Acme", members=None):
    """Insert an organization; ``members`` is a list of ``(user, role)`` pairs."""
    from orgflow.models.organization import Organization, OrganizationMember

    organization = Organization(name=name)
    db.add(organization)
    await db.flush()
    for user, role in members or []:
        db.add(OrganizationMember(organization_id=organization.id, user_id=user.id, role=role))
    await db.flush()
    return organization


async def add_member(db, organization, user, role="member"):
    from orgflow.models.organization import OrganizationMember

    member = OrganizationMember(organization_id=organization.id, user_id=user.id, role=role)
    db.add(member)
    await db.flush()
    return member


async def create_department(db, *, organization, name="Ventes", color="#C7D2FE"):
    """Insert a department into the test database."""
    from orgflow.models.department import Department

    department = Department(organization_id=organization.id, name=name, color=color)
    db.add(department)
    await db.flush()
    return department


async def create_role(db, *, department, name="Commercial", color="#FDE68A"):
    """Insert a role into the test database."""
    from orgflow.models.role import Role

    role = Role(
        organization_id=department.organization_id,
        department_id=department.id,
        name=name,
        color=color,
    )
    db.add(role)
    await db.flush()
    return role


async def create_process(db, *, organization, title="Onboarding", steps=None):
    """Insert a process snapshot; ``steps`` are stored as given."""
    from orgflow.models.process_snapshot import ProcessSnapshot

    process = ProcessSnapshot(
        organization_id=organization.id,
        title=title,
        steps=steps if steps is not None else [],
    )
    db.add(process)
    await db.flush()
    return process


def step(
    step_id,
    type_="action",
    label="Step",
    *,
    department_id=None,
    role_id=None,
    yes=None,
    no=None,
    draft_department=None,
    draft_role=None,
) -> dict:
    """Build a stored (camelCase) step dict."""
    return {
        "id": step_id,
        "label": label,
        "type": type_,
        "departmentId": str(department_id) if department_id else None,
        "draftDepartmentName": draft_department,
        "roleId": str(role_id) if role_id else None,
        "draftRoleName": draft_role,
        "yesTargetId": yes,
        "noTargetId": no,
    }


def auth_headers(user) -> dict[str, str]:
    """Generate Bearer token headers for a test user."""
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def owner_user(db):
    return await create_user(db, email="owner@test.com", display_name="Owner")


@pytest.fixture
async def member_user(db):
    return await create_user(db, email="member@test.com", display_name="Member")


@pytest.fixture
async def outsider_user(db):
    return await create_user(db, email="outsider@test.com", display_name="Outsider")


@pytest.fixture
async def org(db, owner_user, member_user):
    return await create_organization(
        db, name="Acme", members=[(owner_user, "owner"), (member_user, "member")]
    )
