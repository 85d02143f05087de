"""
Achievement scoring

Points are a pure function of achievement type and detail fields. The function
is total: unknown types, missing or malformed details all fall back to zero
bonus instead of raising.
"""

from typing import Any, Mapping, Optional, Union

from app.achievements.achievement_models import AchievementType

BASE_POINTS = {
    AchievementType.COMPETITION: 100,
    AchievementType.PUBLICATION: 80,
    AchievementType.ACADEMIC: 70,
    AchievementType.CERTIFICATION: 60,
    AchievementType.ORGANIZATION: 50,
    AchievementType.OTHER: 30,
}

COMPETITION_LEVEL_BONUS = {
    "international": 100,
    "national": 50,
    "regional": 25,
}

RANK_BONUS = {
    1: 50,
    2: 30,
    3: 20,
}


def _parse_rank(value: Any) -> Optional[int]:
    """Accept 1, 1.0 and "1"; anything else is not a rank"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_type(achievement_type: Union[AchievementType, str, None]) -> Optional[AchievementType]:
    if isinstance(achievement_type, AchievementType):
        return achievement_type
    try:
        return AchievementType(achievement_type)
    except ValueError:
        return None


def calculate_points(
    achievement_type: Union[AchievementType, str, None],
    details: Optional[Mapping[str, Any]],
) -> int:
    parsed = _parse_type(achievement_type)
    if parsed is None:
        return 0

    points = BASE_POINTS[parsed]
    if parsed != AchievementType.COMPETITION or not isinstance(details, Mapping):
        return points

    level = details.get("competitionLevel")
    if isinstance(level, str):
        points += COMPETITION_LEVEL_BONUS.get(level.strip().lower(), 0)

    rank = _parse_rank(details.get("rank"))
    if rank is not None:
        points += RANK_BONUS.get(rank, 0)

    return points
