import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def generate_id(prefix: str) -> str:
    """Generate unique ID with prefix"""
    return f"{prefix}_{secrets.token_hex(8).upper()}"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what both stores hand back"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== ENUMS ====================

class AchievementStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


class AchievementType(str, Enum):
    ACADEMIC = "academic"
    COMPETITION = "competition"
    ORGANIZATION = "organization"
    PUBLICATION = "publication"
    CERTIFICATION = "certification"
    OTHER = "other"


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    EDIT = "edit"
    VERIFY = "verify"
    REJECT = "reject"
    DELETE = "delete"


class RoleCapability(str, Enum):
    """Listing/statistics scope: own achievements, advisees, or everything"""
    STUDENT = "student"
    ADVISOR = "advisor"
    ADMIN = "admin"


# ==================== CONTENT STORE ====================

class Attachment(BaseModel):
    file_name: str
    file_url: str
    file_type: str
    uploaded_at: datetime = Field(default_factory=utcnow)


class AchievementContent(BaseModel):
    """
    Achievement document (content store)
    Mutable only while the paired reference is draft or rejected
    """
    content_id: str  # ACH_XXXXXX
    owner_id: str  # student id
    achievement_type: AchievementType
    title: str
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    points: int = 0  # always derived from type + details
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


# ==================== WORKFLOW STORE ====================

class AchievementReference(BaseModel):
    """
    Workflow record (relational store)
    Authoritative for what may happen to the achievement right now
    """
    reference_id: str  # REF_XXXXXX
    owner_id: str
    content_id: str
    status: AchievementStatus = AchievementStatus.DRAFT
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None  # verifier user id
    rejection_note: Optional[str] = None  # only while rejected
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class StatusHistoryEntry(BaseModel):
    """Append-only; old_status is None for the creation entry"""
    history_id: str  # HIST_XXXXXX
    reference_id: str
    old_status: Optional[AchievementStatus] = None
    new_status: AchievementStatus
    changed_by: str
    note: Optional[str] = None
    changed_at: datetime = Field(default_factory=utcnow)


class ReconciliationFlag(BaseModel):
    flag_id: str  # RECON_XXXXXX
    content_id: str
    reference_id: Optional[str] = None
    reason: str
    created_at: datetime = Field(default_factory=utcnow)


# ==================== DIRECTORY (external) ====================

class Principal(BaseModel):
    """Authenticated caller, already validated upstream"""
    user_id: str
    role: RoleCapability


class StudentRecord(BaseModel):
    id: str
    user_id: str
    advisor_id: Optional[str] = None  # lecturer id
    full_name: Optional[str] = None
    student_number: Optional[str] = None
    program_study: Optional[str] = None
    academic_year: Optional[str] = None


class LecturerRecord(BaseModel):
    id: str
    user_id: str
    full_name: Optional[str] = None
    department: Optional[str] = None


# ==================== READ MODELS ====================

class AchievementView(BaseModel):
    """
    Content merged with workflow state for presentation
    Calculated on-demand, never stored
    """
    reference_id: str
    content_id: str
    owner_id: str
    student_name: Optional[str] = None
    achievement_type: AchievementType
    title: str
    description: str
    details: Dict[str, Any]
    tags: List[str]
    attachments: List[Attachment]
    points: int
    status: AchievementStatus
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def merge(
        cls,
        reference: AchievementReference,
        content: AchievementContent,
        student_name: Optional[str] = None,
    ) -> "AchievementView":
        return cls(
            reference_id=reference.reference_id,
            content_id=content.content_id,
            owner_id=reference.owner_id,
            student_name=student_name,
            achievement_type=content.achievement_type,
            title=content.title,
            description=content.description,
            details=content.details,
            tags=content.tags,
            attachments=content.attachments,
            points=content.points,
            status=reference.status,
            submitted_at=reference.submitted_at,
            verified_at=reference.verified_at,
            verified_by=reference.verified_by,
            rejection_note=reference.rejection_note,
            created_at=reference.created_at,
            updated_at=max(reference.updated_at, content.updated_at),
        )


class TransitionResult(BaseModel):
    reference_id: str
    old_status: AchievementStatus
    new_status: AchievementStatus
    changed_at: datetime
    warnings: List[str] = Field(default_factory=list)


class AchievementPage(BaseModel):
    items: List[AchievementView]
    total: int
    page: int
    limit: int


class TopStudent(BaseModel):
    student_id: str
    total_points: int
    achievements: int


class AchievementStatistics(BaseModel):
    total_achievements: int = 0
    total_verified: int = 0
    total_pending: int = 0
    total_rejected: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_competition_level: Dict[str, int] = Field(default_factory=dict)
    top_students: List[TopStudent] = Field(default_factory=list)
    partial: bool = False
    warnings: List[str] = Field(default_factory=list)


class StudentReport(BaseModel):
    student: StudentRecord
    statistics: AchievementStatistics
    achievements: List[AchievementView]
