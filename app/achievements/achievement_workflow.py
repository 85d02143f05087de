"""
Achievement status state machine.

    draft ──submit──▶ submitted ──verify──▶ verified (terminal)
      ▲                   │
      │ edit           reject(note)
      │                   ▼
      └──────edit────── rejected ──submit──▶ submitted

Deletion is only legal from draft and removes the achievement entirely.
"""

from typing import Dict, Iterable, Optional, Tuple

from app.achievements.achievement_errors import ValidationError, InvalidTransitionError
from app.achievements.achievement_models import (
    AchievementStatus,
    StatusHistoryEntry,
    WorkflowAction,
)

Status = AchievementStatus
Action = WorkflowAction

# (current, action) -> next; None means the achievement is removed
TRANSITIONS: Dict[Tuple[AchievementStatus, WorkflowAction], Optional[AchievementStatus]] = {
    (Status.DRAFT, Action.SUBMIT): Status.SUBMITTED,
    (Status.REJECTED, Action.SUBMIT): Status.SUBMITTED,
    (Status.DRAFT, Action.EDIT): Status.DRAFT,
    (Status.REJECTED, Action.EDIT): Status.DRAFT,
    (Status.SUBMITTED, Action.VERIFY): Status.VERIFIED,
    (Status.SUBMITTED, Action.REJECT): Status.REJECTED,
    (Status.DRAFT, Action.DELETE): None,
}

OWNER_ACTIONS = frozenset({Action.SUBMIT, Action.EDIT, Action.DELETE})
ADVISOR_ACTIONS = frozenset({Action.VERIFY, Action.REJECT})

TERMINAL_STATES = frozenset({Status.VERIFIED})

DEFAULT_NOTES = {
    Action.SUBMIT: "Submitted for verification",
    Action.EDIT: "Revised after rejection",
    Action.VERIFY: "Achievement verified",
}

CREATION_NOTE = "Achievement created"


def is_allowed(current: AchievementStatus, action: WorkflowAction) -> bool:
    return (current, action) in TRANSITIONS


def next_status(current: AchievementStatus, action: WorkflowAction) -> Optional[AchievementStatus]:
    """
    Resolve the status an action leads to

    Raises:
        InvalidTransitionError: action not legal from current status
    """
    if (current, action) not in TRANSITIONS:
        raise InvalidTransitionError(current.value, action.value, _describe(current, action))
    return TRANSITIONS[(current, action)]


def _describe(current: AchievementStatus, action: WorkflowAction) -> str:
    if action == Action.DELETE:
        return f"cannot delete a {current.value} achievement: can only delete draft"
    if action == Action.EDIT:
        return f"cannot edit a {current.value} achievement: can only edit draft or rejected"
    return f"cannot {action.value} a {current.value} achievement"


def resolve_note(action: WorkflowAction, note: Optional[str]) -> Optional[str]:
    """
    Reject needs a non-empty note, everything else falls back to a default

    Raises:
        ValidationError: reject without a note
    """
    note = note.strip() if note else None
    if action == Action.REJECT and not note:
        raise ValidationError("rejection note is required")
    return note or DEFAULT_NOTES.get(action)


def replay_history(entries: Iterable[StatusHistoryEntry]) -> Optional[AchievementStatus]:
    """
    Rebuild the current status from ordered history entries

    Each entry must start from the status the previous one ended in; the
    first one must be the creation entry.

    Raises:
        ValueError: history is not a contiguous chain
    """
    status: Optional[AchievementStatus] = None
    for entry in entries:
        if entry.old_status != status:
            raise ValueError(
                f"History entry {entry.history_id} starts from "
                f"{entry.old_status} but status was {status}"
            )
        status = entry.new_status
    return status
