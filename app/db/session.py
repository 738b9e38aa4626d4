from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.db.base import Base
from app.models import live_session  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()

IS_TEST = settings.APP_ENV.lower() == "test"

# ---------------------------------------------------------------------------
# Main application engine + session
# ---------------------------------------------------------------------------
engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    # Tests drive the engine from more than one event loop (TestClient's
    # portal and pytest-asyncio), so connections must not be pooled.
    poolclass=NullPool if IS_TEST else None,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async SQLAlchemy session.

    The session is automatically closed when the request is completed.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """
    Create any missing tables.

    Safe to call from FastAPI startup. Typically you'd eventually replace
    this with Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_db() -> None:
    """
    TEST-ONLY: drop all tables and recreate them from the current models.

    Do NOT call this from production code. Only from tests/fixtures.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
