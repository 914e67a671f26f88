import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import BigInteger, Integer, text
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    """Pool and timeout options for the configured backend."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_pre_ping": True,
        "connect_args": {"command_timeout": settings.database_statement_timeout},
    }


db_engine = create_async_engine(
    settings.database_url, echo=False, **_engine_options(settings.database_url)
)


# Create async session maker to be used throughout the application
AsyncSessionLocal = async_sessionmaker(
    db_engine, class_=AsyncSession, expire_on_commit=False
)


# Primary key type: BIGINT on PostgreSQL, INTEGER (rowid alias) on SQLite
IdType = BigInteger().with_variant(Integer, "sqlite")


# Base class for declarative models
class Base(DeclarativeBase):
    pass


# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Function to initialize the database (create tables)
async def init_db():
    # Import models so they register on Base.metadata
    import database.models  # noqa: F401

    logger.info("Initializing database schema")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db() -> bool:
    """Return True when the database answers a trivial query."""
    try:
        async with db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Database ping failed", exc_info=True)
        return False
    return True


# Function to close database connections
async def close_db():
    """Close database engine and connections."""
    await db_engine.dispose()
