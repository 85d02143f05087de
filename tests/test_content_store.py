"""Motor content store against an in-memory MongoDB."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

from app.achievements.achievement_errors import StorageError
from app.achievements.achievement_models import AchievementContent, AchievementType, Attachment
from app.achievements.content_store import MongoContentStore

Type = AchievementType


@pytest.fixture
def store() -> MongoContentStore:
    return MongoContentStore(AsyncMongoMockClient()[f"achievements_{uuid4().hex}"])


def _content(
    n: int,
    owner_id: str = "STU-1",
    achievement_type: Type = Type.COMPETITION,
    details: dict = None,
    points: int = 0,
) -> AchievementContent:
    created = datetime(2024, 3, 1) + timedelta(hours=n)
    return AchievementContent(
        content_id=f"ACH_{n:04d}",
        owner_id=owner_id,
        achievement_type=achievement_type,
        title=f"Achievement {n}",
        details=details or {},
        points=points,
        created_at=created,
        updated_at=created,
    )


async def _insert_all(store, *contents):
    for content in contents:
        await store.insert(content)
    return [content.content_id for content in contents]


# ===================================================================
# Documents
# ===================================================================

class TestDocuments:
    async def test_insert_and_find(self, store) -> None:
        content = _content(1, details={"competitionLevel": "national", "rank": 2}, points=150)
        content.tags = ["icpc"]
        content.attachments = [Attachment(file_name="cert.pdf", file_url="https://files/cert.pdf", file_type="application/pdf")]
        await store.insert(content)

        found = await store.find_by_id("ACH_0001")

        assert found.achievement_type is Type.COMPETITION
        assert found.details == {"competitionLevel": "national", "rank": 2}
        assert found.tags == ["icpc"]
        assert found.points == 150
        assert [a.file_name for a in found.attachments] == ["cert.pdf"]
        assert isinstance(found.attachments[0], Attachment)
        assert found.deleted_at is None
        assert await store.find_by_id("ACH_9999") is None

    async def test_type_is_stored_as_plain_string(self, store) -> None:
        await store.insert(_content(1, achievement_type=Type.ORGANIZATION))

        raw = await store.collection.find_one({"content_id": "ACH_0001"})

        assert type(raw["achievement_type"]) is str
        assert raw["achievement_type"] == "organization"

    async def test_find_many(self, store) -> None:
        await _insert_all(store, _content(1), _content(2), _content(3))

        found = await store.find_many(["ACH_0001", "ACH_0003", "ACH_9999"])

        assert set(found) == {"ACH_0001", "ACH_0003"}
        assert found["ACH_0003"].title == "Achievement 3"
        assert await store.find_many([]) == {}

    async def test_update_replaces_mutable_fields(self, store) -> None:
        await store.insert(_content(1))
        edited = _content(1, details={"competitionLevel": "regional"}, points=50)
        edited.title = "Regional finals"
        edited.attachments = [Attachment(file_name="a.png", file_url="https://files/a.png", file_type="image/png")]

        assert await store.update(edited)

        found = await store.find_by_id("ACH_0001")
        assert found.title == "Regional finals"
        assert found.details == {"competitionLevel": "regional"}
        assert found.points == 50
        assert [a.file_name for a in found.attachments] == ["a.png"]
        assert found.updated_at > found.created_at

    async def test_update_keeps_identity_fields(self, store) -> None:
        await store.insert(_content(1))
        edited = _content(1).model_copy(update={
            "owner_id": "STU-2",
            "created_at": datetime(2030, 1, 1),
            "title": "Renamed",
        })

        await store.update(edited)

        raw = await store.collection.find_one({"content_id": "ACH_0001"})
        assert raw["owner_id"] == "STU-1"
        assert raw["created_at"].year == 2024
        assert raw["title"] == "Renamed"

    async def test_update_missing_document(self, store) -> None:
        assert not await store.update(_content(1))
        assert await store.collection.count_documents({}) == 0

    async def test_hard_delete(self, store) -> None:
        await store.insert(_content(1))

        assert await store.delete("ACH_0001")
        assert not await store.delete("ACH_0001")
        assert await store.collection.count_documents({}) == 0


# ===================================================================
# Soft delete
# ===================================================================

class TestSoftDelete:
    async def test_soft_deleted_document_is_hidden(self, store) -> None:
        await _insert_all(store, _content(1), _content(2))

        assert await store.soft_delete("ACH_0001")

        assert await store.find_by_id("ACH_0001") is None
        assert set(await store.find_many(["ACH_0001", "ACH_0002"])) == {"ACH_0002"}
        assert await store.ids_by_type(None, Type.COMPETITION) == ["ACH_0002"]

    async def test_document_is_kept(self, store) -> None:
        await store.insert(_content(1))
        await store.soft_delete("ACH_0001")

        raw = await store.collection.find_one({"content_id": "ACH_0001"})
        assert raw["deleted_at"] is not None

    async def test_second_soft_delete_reports_nothing(self, store) -> None:
        await store.insert(_content(1))

        assert await store.soft_delete("ACH_0001")
        assert not await store.soft_delete("ACH_0001")
        assert not await store.soft_delete("ACH_9999")

    async def test_soft_deleted_document_cannot_be_updated(self, store) -> None:
        await store.insert(_content(1))
        await store.soft_delete("ACH_0001")

        edited = _content(1)
        edited.title = "Too late"
        assert not await store.update(edited)

        raw = await store.collection.find_one({"content_id": "ACH_0001"})
        assert raw["title"] == "Achievement 1"


# ===================================================================
# Lookups and aggregations
# ===================================================================

class TestAggregations:
    async def test_ids_by_type_scoped_to_owners(self, store) -> None:
        await _insert_all(
            store,
            _content(1, owner_id="STU-1", achievement_type=Type.ACADEMIC),
            _content(2, owner_id="STU-2", achievement_type=Type.ACADEMIC),
            _content(3, owner_id="STU-1", achievement_type=Type.COMPETITION),
        )

        assert sorted(await store.ids_by_type(None, Type.ACADEMIC)) == ["ACH_0001", "ACH_0002"]
        assert await store.ids_by_type(["STU-1"], Type.ACADEMIC) == ["ACH_0001"]
        assert await store.ids_by_type([], Type.ACADEMIC) == []

    async def test_count_by_type(self, store) -> None:
        ids = await _insert_all(
            store,
            _content(1, achievement_type=Type.ACADEMIC),
            _content(2, achievement_type=Type.ACADEMIC),
            _content(3, achievement_type=Type.CERTIFICATION),
            _content(4, achievement_type=Type.PUBLICATION),
        )
        await store.soft_delete("ACH_0004")

        assert await store.count_by_type(ids) == {"academic": 2, "certification": 1}
        assert await store.count_by_type(["ACH_0001"]) == {"academic": 1}

    async def test_count_by_competition_level(self, store) -> None:
        ids = await _insert_all(
            store,
            _content(1, details={"competitionLevel": "international"}),
            _content(2, details={"competitionLevel": "international"}),
            _content(3, details={"competitionLevel": "national"}),
            _content(4),
            _content(5, achievement_type=Type.ACADEMIC, details={"competitionLevel": "national"}),
            _content(6, details={"competitionLevel": "local"}),
        )
        await store.soft_delete("ACH_0006")

        counts = await store.count_by_competition_level(ids)

        assert counts == {"international": 2, "national": 1, "unspecified": 1}

    async def test_points_by_owner(self, store) -> None:
        ids = await _insert_all(
            store,
            _content(1, owner_id="STU-1", points=250),
            _content(2, owner_id="STU-1", points=50),
            _content(3, owner_id="STU-2", points=300),
            _content(4, owner_id="STU-3", points=300),
            _content(5, owner_id="STU-4", points=10),
            _content(6, owner_id="STU-4", points=1000),
        )
        await store.soft_delete("ACH_0006")

        rows = await store.points_by_owner(ids)

        assert rows == [
            {"student_id": "STU-1", "total_points": 300, "achievements": 2},
            {"student_id": "STU-2", "total_points": 300, "achievements": 1},
            {"student_id": "STU-3", "total_points": 300, "achievements": 1},
            {"student_id": "STU-4", "total_points": 10, "achievements": 1},
        ]
        assert [row["student_id"] for row in await store.points_by_owner(ids, limit=2)] == ["STU-1", "STU-2"]

    @pytest.mark.parametrize("method", ["count_by_type", "count_by_competition_level"])
    async def test_empty_scope_counts_nothing(self, store, method) -> None:
        await store.insert(_content(1))
        assert await getattr(store, method)([]) == {}

    async def test_empty_scope_ranks_nobody(self, store) -> None:
        await store.insert(_content(1, points=100))
        assert await store.points_by_owner([]) == []


# ===================================================================
# Driver failures
# ===================================================================

class _UnreachableCollection:
    """Every collection call fails the way an unreachable server does"""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("no servers available")
        return fail


class TestDriverErrors:
    @pytest.mark.parametrize("call", [
        lambda store: store.insert(_content(1)),
        lambda store: store.find_by_id("ACH_0001"),
        lambda store: store.update(_content(1)),
        lambda store: store.soft_delete("ACH_0001"),
        lambda store: store.delete("ACH_0001"),
    ])
    async def test_wrapped_as_storage_error(self, store, call) -> None:
        store.collection = _UnreachableCollection()

        with pytest.raises(StorageError) as exc_info:
            await call(store)

        assert isinstance(exc_info.value.__cause__, ServerSelectionTimeoutError)
