# core/database.py
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from core.config import DATABASE_URL, IS_PRODUCTION

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str, production: bool = False) -> AsyncEngine:
    if url.startswith("sqlite"):
        # One connection per checkout; aiosqlite connections are cheap and
        # this keeps them off any event loop they were not created on.
        async_engine = create_async_engine(url, poolclass=NullPool)

        @event.listens_for(async_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return async_engine

    connect_args = {}
    if production:
        # Encrypted transport without certificate verification
        connect_args["ssl"] = "require"
    return create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(DATABASE_URL, IS_PRODUCTION)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create the users and user_stats tables if they are missing."""
    # Registers the tables on Base.metadata
    from core import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")
