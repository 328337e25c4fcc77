"""
Centralized Test Configuration.

In-memory SQLite shared by the app and the fixtures, a MockRedis in place
of the real client, and helpers for members, staff, drivers and orders.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.models.enums import UserRole
from backend.app.models.koperasi import Koperasi
from backend.app.models.driver import Driver
import backend.app.core.redis_client as redis_client_module
from backend.tests.factories import create_user, auth_headers, place_paid_order

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockRedis:
    def __init__(self):
        self.store = {}
        self.fail = False

    async def ping(self):
        if self.fail:
            raise ConnectionError("redis down")
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def exists(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return 1 if key in self.store else 0

    def reset(self):
        self.store = {}
        self.fail = False


@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Point the app at the test database and the mock Redis for the whole run."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(mock_redis):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    mock_redis.reset()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# --- Fixtures ---

@pytest.fixture
async def koperasi(db_session):
    kop = Koperasi(code="KOP-SINDANG", name="Koperasi Sindang Jaya", is_active=True)
    db_session.add(kop)
    await db_session.commit()
    await db_session.refresh(kop)
    return kop


@pytest.fixture
async def member(db_session, koperasi):
    return await create_user(db_session, "siti", tenant_id=koperasi.id, full_name="Siti Aminah")


@pytest.fixture
async def other_member(db_session, koperasi):
    return await create_user(db_session, "budi", tenant_id=koperasi.id, full_name="Budi Santoso")


@pytest.fixture
async def admin(db_session, koperasi):
    return await create_user(db_session, "pengurus", role=UserRole.ADMIN, tenant_id=koperasi.id)


@pytest.fixture
def member_headers(member):
    return auth_headers(member)


@pytest.fixture
def other_headers(other_member):
    return auth_headers(other_member)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
async def driver(db_session, koperasi):
    drv = Driver(
        tenant_id=koperasi.id,
        full_name="Agus Wijaya",
        phone="081298765432",
        vehicle_type="motorcycle",
        license_plate="D 1234 ABC",
        coverage_areas=["Bandung"],
    )
    db_session.add(drv)
    await db_session.commit()
    await db_session.refresh(drv)
    return drv


@pytest.fixture
async def paid_order(client, member_headers):
    return await place_paid_order(client, member_headers)
