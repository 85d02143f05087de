import logging

from app.achievements.content_store import COLLECTION
from app.achievements.workflow_store import Base
from app.database.session import DatabaseManager

logger = logging.getLogger(__name__)


async def create_achievement_indexes(manager: DatabaseManager):
    """
    Create content indexes and the workflow tables this service owns
    Called during application startup
    """
    db = manager.get_database()

    # Achievement documents
    await db[COLLECTION].create_index("content_id", unique=True)
    await db[COLLECTION].create_index("owner_id")
    await db[COLLECTION].create_index([("owner_id", 1), ("achievement_type", 1)])
    await db[COLLECTION].create_index("deleted_at")

    # References, history, reconciliation flags (students/lecturers belong to the account service)
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Achievement indexes and tables ready")
