"""Pytest configuration and fixtures for careaccess tests.

Each test gets its own in-memory SQLite database (aiosqlite), a session on
it, and an httpx client whose `get_db` dependency yields that same session.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from careaccess.config import settings
from careaccess.database import Base, get_db
from careaccess.main import app
from careaccess.models import Permission, Role, RolePermission
from careaccess.models.enums import ContextType
from careaccess.seeding.catalog import SeedCatalog
from careaccess.seeding.seeder import Seeder
from careaccess.services.assignments import assign_role

PLATFORM_ORG = "platform"
ADMIN_USER = "admin-user"


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINTs behave like PostgreSQL
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Catalog Fixtures ─────────────────────────────────────────────

async def add_permissions(db: AsyncSession, *ids: str, category: str = "general",
                          context_type: ContextType = ContextType.ORGANIZATION,
                          is_system: bool = False) -> list[Permission]:
    """Insert bare permissions for unit tests."""
    permissions = [
        Permission(
            id=pid,
            name=pid.replace("_", " ").capitalize(),
            category=category,
            context_type=context_type,
            is_system=is_system,
        )
        for pid in ids
    ]
    db.add_all(permissions)
    await db.flush()
    return permissions


async def add_role(db: AsyncSession, role_id: str, *permission_ids: str,
                   hierarchy_level: int = 3, is_system: bool = False,
                   base_role_id: str | None = None) -> Role:
    """Insert a role and its direct permissions."""
    role = Role(
        id=role_id,
        name=role_id.replace("_", " ").title(),
        context_type=ContextType.ORGANIZATION,
        hierarchy_level=hierarchy_level,
        is_system=is_system,
        is_custom=not is_system,
        base_role_id=base_role_id,
    )
    db.add(role)
    db.add_all(RolePermission(role_id=role_id, permission_id=pid) for pid in permission_ids)
    await db.flush()
    return role


@pytest.fixture
def default_catalog() -> SeedCatalog:
    return SeedCatalog.default()


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession, default_catalog: SeedCatalog):
    """Database seeded with the packaged care-home catalog."""
    return await Seeder(db_session, default_catalog).seed_all()


# ── Auth Fixtures ────────────────────────────────────────────────

def make_token(user_id: str, token_type: str = "access") -> str:
    return jwt.encode(
        {"sub": user_id, "type": token_type},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession, seeded) -> str:
    """A user holding system_admin on a seeded catalog."""
    await assign_role(
        db_session,
        user_id=ADMIN_USER,
        role_id="system_admin",
        organization_id=PLATFORM_ORG,
        assigned_by_id=None,
        is_primary=True,
    )
    return ADMIN_USER


@pytest.fixture
def auth_headers(admin_user: str) -> dict:
    """Authorization headers for the system admin."""
    return {"Authorization": f"Bearer {make_token(admin_user)}"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "cache: Cache tests")
