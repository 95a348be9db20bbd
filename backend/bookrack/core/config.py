from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from typing import Optional
import json
from pathlib import Path

LOCAL_FRONTEND_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


class Settings(BaseSettings):
    # Database (SQLite for local dev; Postgres in deployed environments)
    DATABASE_URL: str = "sqlite:///./bookrack.db"
    SLOW_QUERY_THRESHOLD_MS: float = 200.0

    # JSON list or comma-separated origins
    CORS_ORIGINS: str = json.dumps(LOCAL_FRONTEND_ORIGINS)

    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Daily popularity recompute
    SCHEDULER_ENABLED: bool = True
    POPULARITY_WINDOW_DAYS: int = 30
    POPULAR_BOOKS_LIMIT: int = 10

    # Genre views
    DEFAULT_VIEW_COUNT: int = 10
    MAX_VIEW_COUNT: int = 100
    BACKFILL_BATCH_SIZE: int = 200
    # Unset: page through the whole pool; a short page always ends backfill
    BACKFILL_MAX_PASSES: Optional[int] = None

    # Unset disables the admin endpoints entirely
    ADMIN_API_TOKEN: Optional[str] = None

    model_config = SettingsConfigDict(
        # backend/.env
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.DATABASE_URL.strip():
            raise RuntimeError(
                "DATABASE_URL is empty. Set it in backend/.env, e.g. DATABASE_URL=sqlite:///./bookrack.db"
            )

        if self.POPULARITY_WINDOW_DAYS < 1:
            raise RuntimeError("POPULARITY_WINDOW_DAYS must be at least 1")

        if self.BACKFILL_BATCH_SIZE < 1 or (self.BACKFILL_MAX_PASSES is not None and self.BACKFILL_MAX_PASSES < 1):
            raise RuntimeError("BACKFILL_BATCH_SIZE and BACKFILL_MAX_PASSES must be positive")

        if not 1 <= self.DEFAULT_VIEW_COUNT <= self.MAX_VIEW_COUNT:
            raise RuntimeError("DEFAULT_VIEW_COUNT must be between 1 and MAX_VIEW_COUNT")

    def get_masked_database_url(self) -> str:
        """DATABASE_URL with the password hidden, for log lines."""
        try:
            return make_url(self.DATABASE_URL).render_as_string(hide_password=True)
        except ArgumentError:
            return f"{self.DATABASE_URL.split('://')[0]}://<unparseable>"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def cors_origins_list(self) -> list[str]:
        raw = self.CORS_ORIGINS.strip()
        if raw.startswith("["):
            origins = [str(origin) for origin in json.loads(raw)]
        else:
            origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        return origins or list(LOCAL_FRONTEND_ORIGINS)


settings = Settings()
