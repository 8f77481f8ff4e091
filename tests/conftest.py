"""Shared fixtures: a throwaway SQLite database and the token subsystem."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

TEST_SECRET = "test-secret-key"


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file with all tables created."""
    import app.models  # noqa: F401
    from app.db.session import Base

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def issuer():
    from app.services.token_issuer import TokenIssuer

    return TokenIssuer(secret=TEST_SECRET)


@pytest.fixture
def store(session_factory):
    from app.services.token_store import TokenStore

    return TokenStore(session_factory)


@pytest.fixture
def rotation(issuer, store):
    from app.services.rotation import RotationValidator

    return RotationValidator(issuer, store)


@pytest.fixture
def codec():
    from app.services.cookies import CookieCodec

    return CookieCodec()


@pytest.fixture
def past_clock():
    """Clock frozen eight days ago, so refresh tokens it mints are already expired."""
    frozen = datetime.now(timezone.utc) - timedelta(days=8)
    return lambda: frozen
