from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from emasjid_billing.core.config import settings
from typing import AsyncGenerator, Optional
import asyncio
import logging
from emasjid_billing.models.base import Base

import emasjid_billing.models

logger = logging.getLogger(__name__)

class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None):
        """Initializes the database engine and session maker upon creation."""
        self.engine = create_async_engine(database_url or settings.DATABASE_URL, echo=False)
        self.async_session_maker = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )

    async def close(self):
        """Closes the database engine connections."""
        if self.engine:
            await self.engine.dispose()

    async def get_db_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provides a database session."""
        async with self.async_session_maker() as session:
            yield session

db_manager = DatabaseManager()

async def init_db(drop_existing: bool = False):
    """
    Creates all billing tables. Production schemas are managed by Alembic;
    this is for local development and throwaway databases.
    """
    logger.info("Initializing database...")
    async with db_manager.engine.begin() as conn:
        logger.info("Tables known to Base.metadata: %s", list(Base.metadata.tables.keys()))
        if drop_existing:
            logger.info("Dropping all existing tables...")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialization finished successfully.")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())
