"""Pytest fixtures for statutory payroll tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from statutory_payroll.api.app import create_app
from statutory_payroll.api.dependencies import get_db_session
from statutory_payroll.calculators import (
    DeductionEngine,
    Employee,
    EmployeeClassification,
    JurisdictionRegistry,
)
from statutory_payroll.database import create_tables, make_session_factory

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def registry() -> JurisdictionRegistry:
    """Bundled jurisdiction tables."""
    return JurisdictionRegistry.default()


@pytest.fixture
def engine(registry: JurisdictionRegistry) -> DeductionEngine:
    return DeductionEngine(registry)


@pytest.fixture
def kenyan() -> Employee:
    return Employee(employee_id=uuid4(), jurisdiction_code="KE")


@pytest.fixture
def ugandan() -> Employee:
    return Employee(employee_id=uuid4(), jurisdiction_code="UG")


@pytest.fixture
def expatriate_in_uganda() -> Employee:
    return Employee(
        employee_id=uuid4(),
        jurisdiction_code="UG",
        classification=EmployeeClassification.EXPATRIATE,
    )


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, backed by the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
