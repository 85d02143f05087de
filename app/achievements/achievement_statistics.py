"""
Achievement statistics (read-only, best-effort)

Status counts come from the workflow store; type, competition level and
points come from the content documents of the matching references. A store
failure in one section leaves that section empty and marks the report partial
instead of failing the whole report.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from app.achievements.achievement_errors import StorageError
from app.achievements.achievement_models import (
    AchievementStatistics,
    AchievementStatus,
    TopStudent,
)

logger = logging.getLogger(__name__)

TOP_STUDENT_LIMIT = 10


async def collect_statistics(
    content_store,
    workflow_store,
    call: Callable[[Awaitable, str], Awaitable],
    owner_ids: Optional[List[str]] = None,
    status: Optional[AchievementStatus] = None,
) -> AchievementStatistics:
    """
    Aggregate counts for the given owners (None = everyone)

    Args:
        call: wraps each store call with the request deadline
    """
    stats = AchievementStatistics()

    def degrade(section: str, error: StorageError):
        logger.warning("Statistics section %s unavailable: %s", section, error)
        stats.partial = True
        stats.warnings.append(f"{section} unavailable")

    try:
        by_status = await call(workflow_store.count_by_status(owner_ids, status), "status statistics")
        stats.by_status = dict(by_status)
        stats.total_achievements = sum(by_status.values())
        stats.total_verified = by_status.get(AchievementStatus.VERIFIED.value, 0)
        stats.total_pending = by_status.get(AchievementStatus.SUBMITTED.value, 0)
        stats.total_rejected = by_status.get(AchievementStatus.REJECTED.value, 0)
    except StorageError as e:
        degrade("by_status", e)

    try:
        content_ids = await call(workflow_store.content_ids(owner_ids, status), "content id lookup")
    except StorageError as e:
        # Every content-side section depends on this lookup
        for section in ("by_type", "by_competition_level", "top_students"):
            degrade(section, e)
        return stats

    try:
        stats.by_type = await call(content_store.count_by_type(content_ids), "type statistics")
    except StorageError as e:
        degrade("by_type", e)

    try:
        stats.by_competition_level = await call(
            content_store.count_by_competition_level(content_ids), "competition statistics"
        )
    except StorageError as e:
        degrade("by_competition_level", e)

    # Only verified achievements count towards a student's standing
    try:
        if status in (None, AchievementStatus.VERIFIED):
            verified_ids = await call(
                workflow_store.content_ids(owner_ids, AchievementStatus.VERIFIED), "content id lookup"
            )
            rows = await call(
                content_store.points_by_owner(verified_ids, TOP_STUDENT_LIMIT), "points statistics"
            )
            stats.top_students = [TopStudent(**row) for row in rows]
    except StorageError as e:
        degrade("top_students", e)

    return stats
