import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.achievements.achievement_errors import AchievementError
from app.achievements.achievement_router import router as achievement_router
from app.achievements.database_setup import create_achievement_indexes
from app.core.config import settings
from app.database.session import db_manager

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Achievement Service")


@app.on_event("startup")
async def startup_event():
    db_manager.connect(settings)
    await create_achievement_indexes(db_manager)


@app.on_event("shutdown")
async def shutdown_event():
    await db_manager.disconnect()


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AchievementError)
async def achievement_error_handler(request: Request, exc: AchievementError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ==================== ROUTER REGISTRATION ====================
app.include_router(achievement_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
