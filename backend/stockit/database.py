"""Database engine, session factory, and declarative base.

All tenant data lives in shared tables; isolation is by the
`organization_id` column, which request handlers always take from the
session token (see `stockit.auth.deps.scope_to_organization`).
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from stockit.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (tests, local dev) uses a single-connection pool without sizing
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug and settings.environment == "development",
    **_engine_options(settings.database_url),
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Yield a session; commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create any missing tables. Runs once at startup."""
    from stockit import models  # noqa: F401 - register all mappers

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
