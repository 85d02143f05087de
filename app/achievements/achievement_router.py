from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.achievements.achievement_dependencies import get_achievement_service, get_principal
from app.achievements.achievement_models import (
    AchievementPage,
    AchievementStatistics,
    AchievementStatus,
    AchievementType,
    AchievementView,
    Principal,
    StatusHistoryEntry,
    StudentReport,
    TransitionResult,
)
from app.achievements.achievement_schemas import (
    AchievementCreate,
    AchievementFilter,
    AchievementUpdate,
    AttachmentCreate,
    RejectRequest,
    TransitionRequest,
)
from app.achievements.achievement_service import AchievementService
from app.core.config import settings
from app.database.deadline import request_deadline

router = APIRouter(prefix="/achievements", tags=["Achievements"])


def _deadline():
    return request_deadline(settings.request_timeout_seconds)


# ==================== LISTING & REPORTS ====================

@router.get("", response_model=AchievementPage)
async def list_achievements(
    status: Optional[AchievementStatus] = None,
    achievement_type: Optional[AchievementType] = None,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Students see their own achievements, advisors their advisees', admins all
    """
    filters = AchievementFilter(status=status, achievement_type=achievement_type, page=page, limit=limit)
    with _deadline():
        return await service.list_for_role(principal, filters)


@router.get("/statistics", response_model=AchievementStatistics)
async def get_statistics(
    status: Optional[AchievementStatus] = None,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.statistics_for_role(principal, status)


@router.get("/students/{student_id}/report", response_model=StudentReport)
async def get_student_report(
    student_id: str,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.student_report(principal, student_id, page, limit)


# ==================== ACHIEVEMENT CRUD ====================

@router.post("", response_model=AchievementView, status_code=201)
async def create_achievement(
    data: AchievementCreate,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Report a new achievement as draft
    """
    with _deadline():
        return await service.create(principal.user_id, data)


@router.get("/{reference_id}", response_model=AchievementView)
async def get_achievement(
    reference_id: str,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.get(reference_id)


@router.put("/{reference_id}", response_model=AchievementView)
async def update_achievement(
    reference_id: str,
    data: AchievementUpdate,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Edit a draft or rejected achievement; a rejected one goes back to draft
    """
    with _deadline():
        return await service.update(reference_id, principal.user_id, data)


@router.delete("/{reference_id}", status_code=204)
async def delete_achievement(
    reference_id: str,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        await service.delete(reference_id, principal.user_id)
    return None


@router.post("/{reference_id}/attachments", response_model=AchievementView, status_code=201)
async def add_attachment(
    reference_id: str,
    data: AttachmentCreate,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.add_attachment(reference_id, principal.user_id, data)


# ==================== WORKFLOW ====================

@router.post("/{reference_id}/submit", response_model=TransitionResult)
async def submit_achievement(
    reference_id: str,
    data: Optional[TransitionRequest] = None,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.submit(reference_id, principal.user_id, data.note if data else None)


@router.post("/{reference_id}/verify", response_model=TransitionResult)
async def verify_achievement(
    reference_id: str,
    data: Optional[TransitionRequest] = None,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Assigned advisor approves a submitted achievement
    """
    with _deadline():
        return await service.verify(reference_id, principal.user_id, data.note if data else None)


@router.post("/{reference_id}/reject", response_model=TransitionResult)
async def reject_achievement(
    reference_id: str,
    data: RejectRequest,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Assigned advisor sends a submitted achievement back with a note
    """
    with _deadline():
        return await service.reject(reference_id, principal.user_id, data.rejection_note)


@router.get("/{reference_id}/history", response_model=List[StatusHistoryEntry])
async def get_history(
    reference_id: str,
    principal: Principal = Depends(get_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    with _deadline():
        return await service.history(reference_id)
