"""
Pytest configuration and fixtures for KeyGate tests.

Provides common fixtures for:
- Test database setup (in-memory SQLite)
- Token store and services
- A deterministic redirect gate
- An ASGI-backed HTTP client with dependency overrides
"""

import os

# Configure the environment before the application settings are loaded
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GATE_PROVIDER", "mock")
os.environ.setdefault("OPERATOR_API_KEY", "test-operator-key")
os.environ.setdefault("LOG_DIR", "/nonexistent/keygate-test-logs")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from keygate.api.deps import get_db, get_gate
from keygate.core.rate_limit import limiter
from keygate.core.security import generate_device_id
from keygate.db.session import Base
from keygate.integrations.gate.mock import MockGate
from keygate.main import app
from keygate.services.issuer import TokenIssuer
from keygate.services.operator import TokenOperatorService
from keygate.services.token_store import TokenStore
from keygate.services.validator import TokenValidator

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OPERATOR_KEY = "test-operator-key"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def store(db_session) -> TokenStore:
    return TokenStore(db_session)


@pytest.fixture
def gate() -> MockGate:
    return MockGate(base_url="https://gate.test/g")


@pytest.fixture
def issuer(store, gate) -> TokenIssuer:
    return TokenIssuer(store, gate)


@pytest.fixture
def validator(store) -> TokenValidator:
    return TokenValidator(store)


@pytest.fixture
def operator_service(store) -> TokenOperatorService:
    return TokenOperatorService(store)


@pytest.fixture
def device_id() -> str:
    return generate_device_id()


@pytest.fixture
def other_device_id() -> str:
    return generate_device_id()


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gate) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client with a fresh session per request and the mock gate."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_gate] = lambda: gate
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def operator_headers() -> dict:
    return {"X-Operator-Key": OPERATOR_KEY}
