import logging
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import (
    DATABASE_URL, DB_ECHO, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT, DB_POOL_RECYCLE
)

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_options(url: str) -> dict:
    options = {"echo": DB_ECHO, "pool_pre_ping": True}
    # SQLite uses a file/static pool that rejects sizing arguments
    if not url.startswith("sqlite"):
        options.update(
            pool_size=DB_POOL_SIZE,
            max_overflow=DB_MAX_OVERFLOW,
            pool_timeout=DB_POOL_TIMEOUT,
            pool_recycle=DB_POOL_RECYCLE,
        )
    return options


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db():
    """
    FastAPI dependency providing one session per request.
    The session is closed (and its connection returned to the pool) on every exit path.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Commit everything done inside the block, or roll it all back.

    Usage:
        async with transaction(db):
            db.add(like)
            await db.execute(update(Post)...)
    """
    try:
        yield db
        await db.commit()
    except Exception:
        try:
            await db.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback failed: {str(rollback_error)}")
        raise


async def release_connection(db: AsyncSession):
    """End the session's current (read) transaction so its connection goes back to the pool."""
    if db.in_transaction():
        await db.commit()


async def create_tables():
    # Register every model with Base before create_all
    from app.models import user, token, post, social, group  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def drop_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
