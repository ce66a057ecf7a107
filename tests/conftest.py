"""
Pytest configuration for booking engine tests
"""

import os

# Set test environment variables before the app modules read them
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["BOOKING_TIMEZONE"] = "UTC"
os.environ["HORIZON_DAYS"] = "30"
os.environ["CANCELLATION_LEAD_HOURS"] = "24"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from database import get_session, init_db
from main import app


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File database so concurrent sessions get their own connections"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'slots.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
