"""Portal Auth Database Configuration - Async SQLAlchemy.

Only used by the database-backed revocation store. The engine is created
on demand from ``DATABASE_URL`` rather than at import, because single
instance deployments run without a database at all.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from portal_auth.core.logging import get_logger

logger = get_logger("database")

# Base class for models
Base = declarative_base()


def create_session_maker(database_url: str, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """Create an async engine and return its session factory."""
    engine_kwargs: dict = {"echo": echo}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=10,
            max_overflow=10,
            pool_recycle=1800,
            pool_pre_ping=True,  # Verify connection before use
        )
    engine = create_async_engine(database_url, **engine_kwargs)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def check_db_connection(session_maker: async_sessionmaker[AsyncSession]) -> bool:
    """Check if database is reachable."""
    try:
        async with session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        logger.debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        logger.warning(f"Unexpected error checking database connection: {e}")
        return False
