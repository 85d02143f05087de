"""
Achievement Service Configuration
Store connections, timeouts and paging defaults
"""

import os
from typing import Optional


class Settings:
    """Runtime settings for the achievement service"""

    def __init__(
        self,
        mongo_url: str = "mongodb://localhost:27017",
        mongo_db: str = "achievements_db",
        database_url: str = "postgresql+asyncpg://localhost:5432/achievements",
        store_timeout_seconds: float = 5.0,
        request_timeout_seconds: float = 15.0,
        default_page_size: int = 10,
        max_page_size: int = 100,
        jwt_secret_key: Optional[str] = None,
        jwt_algorithm: str = "HS256",
        log_level: str = "INFO",
    ):
        self.mongo_url = mongo_url
        self.mongo_db = mongo_db
        self.database_url = database_url
        self.store_timeout_seconds = store_timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.jwt_secret_key = jwt_secret_key
        self.jwt_algorithm = jwt_algorithm
        self.log_level = log_level


def get_settings_from_env() -> Settings:
    """
    Create settings from environment variables

    Environment variables:
        MONGO_URL: MongoDB connection URI (default: mongodb://localhost:27017)
        MONGO_DB: Database holding achievement documents (default: achievements_db)
        DATABASE_URL: SQLAlchemy async URL for the workflow store
        STORE_TIMEOUT_SECONDS: Per-call bound when no request deadline is set (default: 5)
        REQUEST_TIMEOUT_SECONDS: Deadline applied to each HTTP request (default: 15)
        DEFAULT_PAGE_SIZE: List page size when none is given (default: 10)
        MAX_PAGE_SIZE: Upper bound for list page size (default: 100)
        JWT_SECRET_KEY: Shared secret used to decode bearer tokens
        JWT_ALGORITHM: Token algorithm (default: HS256)
        LOG_LEVEL: Root log level (default: INFO)
    """
    return Settings(
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "achievements_db"),
        database_url=os.getenv(
            "DATABASE_URL", "postgresql+asyncpg://localhost:5432/achievements"
        ),
        store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "5")),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15")),
        default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "10")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "100")),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = get_settings_from_env()
