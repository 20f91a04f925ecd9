"""Database engine, session factory and table creation."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import IncidentDeskConfig
from .repositories.tables import Base
from .utils.logging import get_logger

logger = get_logger("incident_desk.database")


def build_engine(config: IncidentDeskConfig) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_created", url=str(engine.url))
