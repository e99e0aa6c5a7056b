"""
Test Configuration and Fixtures

Provides an in-memory repository, a SQLite-backed async session and an
async test client wired to that session.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from backend.db.session import create_engine_for, create_session_factory, get_db
from backend.main import app
from backend.models.base import Base
from backend.models.employee import Employee
from tests.factories import make_employee
from tests.fakes import InMemoryCommissionRepository

# One shared in-memory database per test engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def repository() -> InMemoryCommissionRepository:
    return InMemoryCommissionRepository()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean database session for each test."""
    test_engine = create_engine_for(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with create_session_factory(test_engine)() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with dependency override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_employee(db_session: AsyncSession) -> Employee:
    """Create a stored employee."""
    employee = make_employee(name="Sam Biller")
    db_session.add(employee)
    await db_session.commit()
    return employee
