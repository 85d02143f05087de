"""
Database Session Management
Owns the MongoDB client (achievement content) and the SQLAlchemy
async engine (workflow references and history)
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.core.config import Settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages connection lifecycle for both stores"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    def connect(self, settings: Settings):
        """Initialize both connections"""
        if not settings.mongo_url:
            raise RuntimeError("MONGO_URL environment variable required")
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL environment variable required")

        self.client = AsyncIOMotorClient(
            settings.mongo_url,
            serverSelectionTimeoutMS=int(settings.store_timeout_seconds * 1000),
        )
        self.db = self.client[settings.mongo_db]

        self.engine = create_async_engine(settings.database_url, pool_pre_ping=True)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        logger.info("Connected to MongoDB database %s and workflow store", settings.mongo_db)

    async def disconnect(self):
        """Close both connections"""
        if self.client:
            self.client.close()
            self.client = None
        if self.engine:
            await self.engine.dispose()
            self.engine = None
        logger.info("Database connections closed")

    def get_database(self) -> AsyncIOMotorDatabase:
        """Get MongoDB database instance for dependency injection"""
        if self.db is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self.db

    def get_session_factory(self) -> async_sessionmaker:
        """Get SQLAlchemy session factory for dependency injection"""
        if self.session_factory is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self.session_factory


# Global database manager
db_manager = DatabaseManager()
