import pytest

from app.achievements.achievement_schemas import AchievementCreate
from app.achievements.achievement_service import AchievementService
from tests.fakes import STUDENT_USER, FakeContentStore, FakeDirectory, FakeWorkflowStore


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def workflow_store() -> FakeWorkflowStore:
    return FakeWorkflowStore()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory.with_defaults()


@pytest.fixture
def service(content_store, workflow_store, directory) -> AchievementService:
    return AchievementService(content_store, workflow_store, directory, store_timeout_seconds=1.0)


@pytest.fixture
def competition_request() -> AchievementCreate:
    return AchievementCreate(
        achievement_type="competition",
        title="ICPC World Finals",
        description="Team programming contest",
        details={"competitionLevel": "international", "rank": 1},
        tags=["programming", "team", "programming"],
    )


@pytest.fixture
def make_achievement(service, competition_request):
    """Create an achievement for the default student and return its view"""
    async def _make(user_id: str = STUDENT_USER, request: AchievementCreate = None):
        return await service.create(user_id, request or competition_request)
    return _make
