"""
MarketPro Lead Core Database Configuration
Async SQLAlchemy engine and sessions for the Lead Store.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs and tests.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
import structlog

from .config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Declarative base for the lead lifecycle tables"""
    pass


def engine_options(database_url: str, debug: bool = False) -> Dict[str, Any]:
    """Engine keyword arguments for the configured backend.

    SQLite connections are shared across the event loop's tasks and have no
    server side to recycle against; pooled servers get pre-ping and recycle.
    """
    options: Dict[str, Any] = {"echo": debug}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 300
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url, settings.debug))

# Snapshots are read after commit, so instances must not expire
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for the Lead Store"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Lead store session error", error=str(e))
            await session.rollback()
            raise


async def init_db():
    """Create the lead lifecycle tables and partial unique indexes"""
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "Lead store schema verified",
        backend=engine.url.get_backend_name(),
        tables=sorted(Base.metadata.tables),
    )


async def close_db():
    """Dispose of pooled connections"""
    await engine.dispose()
    logger.info("Lead store connections closed")
