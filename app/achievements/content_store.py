"""
Content store adapter: achievement documents in MongoDB.

Owns no workflow knowledge. Driver failures are wrapped in StorageError so
nothing driver-specific reaches callers.
"""

import functools
import logging
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.achievements.achievement_errors import StorageError
from app.achievements.achievement_models import AchievementContent, AchievementType, utcnow

logger = logging.getLogger(__name__)

COLLECTION = "achievements"


def _wrap_driver_errors(operation: str):
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except PyMongoError as e:
                logger.warning("Content store %s failed: %s", operation, e)
                raise StorageError(f"Content store unavailable during {operation}") from e
        return wrapper
    return decorator


def _to_document(content: AchievementContent, exclude=None) -> dict:
    data = content.model_dump(exclude=exclude)
    # Stored as the plain string so filters and $group keys match
    data["achievement_type"] = content.achievement_type.value
    return data


def _to_content(doc: dict) -> AchievementContent:
    doc.pop("_id", None)
    return AchievementContent(**doc)


class MongoContentStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[COLLECTION]

    @_wrap_driver_errors("insert")
    async def insert(self, content: AchievementContent) -> AchievementContent:
        await self.collection.insert_one(_to_document(content))
        return content

    @_wrap_driver_errors("find")
    async def find_by_id(self, content_id: str) -> Optional[AchievementContent]:
        doc = await self.collection.find_one({"content_id": content_id, "deleted_at": None})
        return _to_content(doc) if doc else None

    @_wrap_driver_errors("find")
    async def find_many(self, content_ids: List[str]) -> Dict[str, AchievementContent]:
        if not content_ids:
            return {}
        cursor = self.collection.find({"content_id": {"$in": content_ids}, "deleted_at": None})
        docs = await cursor.to_list(length=None)
        return {doc["content_id"]: _to_content(doc) for doc in docs}

    @_wrap_driver_errors("update")
    async def update(self, content: AchievementContent) -> bool:
        """Replace mutable fields; returns False if the document is gone"""
        content.updated_at = utcnow()
        data = _to_document(content, exclude={"content_id", "owner_id", "created_at"})
        result = await self.collection.update_one(
            {"content_id": content.content_id, "deleted_at": None},
            {"$set": data},
        )
        return result.matched_count == 1

    @_wrap_driver_errors("soft delete")
    async def soft_delete(self, content_id: str) -> bool:
        now = utcnow()
        result = await self.collection.update_one(
            {"content_id": content_id, "deleted_at": None},
            {"$set": {"deleted_at": now, "updated_at": now}},
        )
        return result.matched_count == 1

    @_wrap_driver_errors("delete")
    async def delete(self, content_id: str) -> bool:
        """Hard delete, used only to compensate a failed creation"""
        result = await self.collection.delete_one({"content_id": content_id})
        return result.deleted_count == 1

    @_wrap_driver_errors("type lookup")
    async def ids_by_type(self, owner_ids: Optional[List[str]], achievement_type: AchievementType) -> List[str]:
        query = {"achievement_type": achievement_type.value, "deleted_at": None}
        if owner_ids is not None:
            query["owner_id"] = {"$in": owner_ids}
        cursor = self.collection.find(query, {"content_id": 1})
        docs = await cursor.to_list(length=None)
        return [doc["content_id"] for doc in docs]

    # ==================== AGGREGATIONS ====================

    @_wrap_driver_errors("type statistics")
    async def count_by_type(self, content_ids: List[str]) -> Dict[str, int]:
        if not content_ids:
            return {}
        rows = await self.collection.aggregate([
            {"$match": {"content_id": {"$in": content_ids}, "deleted_at": None}},
            {"$group": {"_id": "$achievement_type", "count": {"$sum": 1}}},
        ]).to_list(length=None)
        return {row["_id"]: row["count"] for row in rows}

    @_wrap_driver_errors("competition statistics")
    async def count_by_competition_level(self, content_ids: List[str]) -> Dict[str, int]:
        if not content_ids:
            return {}
        rows = await self.collection.aggregate([
            {"$match": {
                "content_id": {"$in": content_ids},
                "achievement_type": AchievementType.COMPETITION.value,
                "deleted_at": None,
            }},
            {"$group": {
                "_id": {"$ifNull": ["$details.competitionLevel", "unspecified"]},
                "count": {"$sum": 1},
            }},
        ]).to_list(length=None)
        return {str(row["_id"]): row["count"] for row in rows}

    @_wrap_driver_errors("points statistics")
    async def points_by_owner(self, content_ids: List[str], limit: int = 10) -> List[dict]:
        if not content_ids:
            return []
        rows = await self.collection.aggregate([
            {"$match": {"content_id": {"$in": content_ids}, "deleted_at": None}},
            {"$group": {
                "_id": "$owner_id",
                "total_points": {"$sum": "$points"},
                "achievements": {"$sum": 1},
            }},
            {"$sort": {"total_points": -1, "_id": 1}},
            {"$limit": limit},
        ]).to_list(length=None)
        return [
            {"student_id": row["_id"], "total_points": row["total_points"], "achievements": row["achievements"]}
            for row in rows
        ]
