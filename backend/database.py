"""
Async database layer for the Radeo Storefront API.

One AsyncEngine per process (aiosqlite in development, any async driver URL in
production). Sessions come from get_db(); services flush, routes commit.

SQLite connections get foreign keys and WAL journaling switched on, since
order items, stock movements and reviews all cascade from their parents.
"""
import logging
import os

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def async_database_url(url: str) -> str:
    """sqlite:///./data/x.db -> sqlite+aiosqlite:///./data/x.db; other URLs pass through."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def _sqlite_file(url: str) -> str | None:
    if not url.startswith("sqlite") or ":memory:" in url:
        return None
    return url.split(":///", 1)[-1]


engine = create_async_engine(async_database_url(settings.database_url), echo=False)

if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create missing tables. Runs once from the app lifespan and create_admin."""
    import db_models  # noqa: F401  (registers the mappers on Base.metadata)

    path = _sqlite_file(settings.database_url)
    if path:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({engine.dialect.name}, {len(Base.metadata.tables)} tables)")


async def ping_db(db: AsyncSession) -> bool:
    """True when the session can reach the database."""
    try:
        await db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return False


async def get_db() -> AsyncSession:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
