from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from app.achievements.achievement_errors import AuthorizationError
from app.achievements.achievement_models import Principal
from app.achievements.achievement_permissions import parse_role
from app.achievements.achievement_service import AchievementService
from app.achievements.content_store import MongoContentStore
from app.achievements.directory import SqlDirectory
from app.achievements.workflow_store import SqlWorkflowStore
from app.core.config import settings
from app.database.session import db_manager


def _decode_jwt_token(token: str) -> dict:
    if not settings.jwt_secret_key:
        raise HTTPException(status_code=500, detail="JWT_SECRET_KEY not configured")
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")


def get_token_payload(authorization: str = Header(None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return _decode_jwt_token(authorization.split(" ", 1)[1])


def get_principal(payload: dict = Depends(get_token_payload)) -> Principal:
    """
    Dependency: turns the token claims into a Principal

    Raises:
        401: missing subject
        AuthorizationError: role claim is not student/advisor/admin
    """
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing user_id")
    role = payload.get("role")
    if role is None:
        raise AuthorizationError("Token carries no role")
    return Principal(user_id=user_id, role=parse_role(role))


def get_achievement_service() -> AchievementService:
    session_factory = db_manager.get_session_factory()
    return AchievementService(
        MongoContentStore(db_manager.get_database()),
        SqlWorkflowStore(session_factory),
        SqlDirectory(session_factory),
        store_timeout_seconds=settings.store_timeout_seconds,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
