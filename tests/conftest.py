from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.core.database.base import Base
from src.core.database import get_db, get_session_factory
from src.core.sequences import AllocationRetryConfig, DocumentSequenceEngine
from src.main import app
from src.modules.documents.service import make_issued_checker


# File-backed SQLite with one connection per session, so concurrent
# sessions behave like separate processes hitting the same database.
@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def retry_config() -> AllocationRetryConfig:
    return AllocationRetryConfig(max_attempts=20, backoff_multiplier=0.01, backoff_max=0.1)


@pytest.fixture
def sequence_engine(session_factory, retry_config) -> DocumentSequenceEngine:
    return DocumentSequenceEngine(
        session_factory,
        issued_checker=make_issued_checker(session_factory),
        retry_config=retry_config,
    )


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependencies."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()

