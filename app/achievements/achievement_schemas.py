from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.achievements.achievement_models import AchievementStatus, AchievementType

# ==================== REQUEST SCHEMAS ====================


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class AchievementCreate(BaseModel):
    """
    Student reports a new achievement
    Type is checked by the lifecycle engine so an unknown value maps to a
    validation error rather than a framework error
    """
    achievement_type: str
    title: str = ""
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _clean_tags(v)


class AchievementUpdate(BaseModel):
    """
    Partial edit; empty or missing fields keep their current value
    Points are never accepted here
    """
    title: Optional[str] = None
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _clean_tags(v)


class AttachmentCreate(BaseModel):
    file_name: str = Field(..., min_length=1)
    file_url: str = Field(..., min_length=1)
    file_type: str = Field(..., min_length=1)


class TransitionRequest(BaseModel):
    note: Optional[str] = None


class RejectRequest(BaseModel):
    rejection_note: str = ""


class AchievementFilter(BaseModel):
    status: Optional[AchievementStatus] = None
    achievement_type: Optional[AchievementType] = None
    page: int = 1
    limit: Optional[int] = None
