"""
Authorization gate for the achievement lifecycle.

Pure functions over already-resolved directory records. The lifecycle engine
runs them before any state check so non-owners learn nothing about workflow
state.
"""

import logging
from typing import Optional

from app.achievements.achievement_errors import AuthorizationError
from app.achievements.achievement_models import (
    AchievementReference,
    LecturerRecord,
    Principal,
    RoleCapability,
    StudentRecord,
)

logger = logging.getLogger(__name__)


def is_owner(actor_student_id: Optional[str], owner_id: Optional[str]) -> bool:
    return bool(actor_student_id) and actor_student_id == owner_id


def is_assigned_advisor(actor_lecturer_id: Optional[str], advisor_id: Optional[str]) -> bool:
    """Fails closed when the student has no advisor"""
    if not actor_lecturer_id or not advisor_id:
        return False
    return actor_lecturer_id == advisor_id


def parse_role(role) -> RoleCapability:
    """
    Map an upstream role claim onto a capability

    Raises:
        AuthorizationError: role is not one this service knows
    """
    if isinstance(role, RoleCapability):
        return role
    try:
        return RoleCapability(str(role).strip().lower())
    except ValueError:
        raise AuthorizationError(f"Unknown role: {role}")


def check_owner(actor: Optional[StudentRecord], reference: AchievementReference):
    """
    Raises:
        AuthorizationError: actor is not a student, or not the owner
    """
    if not is_owner(actor.id if actor else None, reference.owner_id):
        logger.info("Ownership check failed on %s", reference.reference_id)
        raise AuthorizationError("Not authorized to modify this achievement")


def check_advisor(
    actor: Optional[LecturerRecord],
    owner: Optional[StudentRecord],
    reference: AchievementReference,
):
    """
    Raises:
        AuthorizationError: actor is not a lecturer, owner unknown, or not
        the owner's assigned advisor
    """
    if not is_assigned_advisor(
        actor.id if actor else None,
        owner.advisor_id if owner else None,
    ):
        logger.info("Advisor check failed on %s", reference.reference_id)
        raise AuthorizationError("Not authorized to review this achievement")


def can_view_student(
    principal: Principal,
    student: StudentRecord,
    lecturer: Optional[LecturerRecord] = None,
) -> bool:
    """Admins see everyone, students themselves, advisors their advisees"""
    role = parse_role(principal.role)
    if role == RoleCapability.ADMIN:
        return True
    if role == RoleCapability.STUDENT:
        return student.user_id == principal.user_id
    return is_assigned_advisor(lecturer.id if lecturer else None, student.advisor_id)
