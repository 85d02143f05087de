"""
Error taxonomy for the achievement lifecycle.

Every error carries a stable machine-readable kind, a human-readable message
and the HTTP status the router answers with.
"""

from typing import Optional


class AchievementError(Exception):
    kind = "achievement_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(AchievementError):
    """Malformed or missing required input"""
    kind = "validation_error"
    status_code = 422


class AuthorizationError(AchievementError):
    """Actor lacks the ownership or advisor relationship"""
    kind = "authorization_error"
    status_code = 403


class InvalidTransitionError(AchievementError):
    """Action is not legal from the reference's current status"""
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current_status: str, action: str, message: Optional[str] = None):
        self.current_status = current_status
        self.action = action
        super().__init__(message or f"cannot {action} a {current_status} achievement")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        data["action"] = self.action
        return data


class NotFoundError(AchievementError):
    """No content or no reference for the given id"""
    kind = "not_found"
    status_code = 404


class ConsistencyError(AchievementError):
    """Cross-store write was only partially applied"""
    kind = "consistency_error"
    status_code = 500


class StorageError(AchievementError):
    """Store failure (timeout, connection, driver error) without driver detail"""
    kind = "storage_error"
    status_code = 503
