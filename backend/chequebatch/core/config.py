"""
Application settings, loaded from environment variables and .env files.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "chequebatch_user"
    POSTGRES_PASSWORD: str = "chequebatch_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "chequebatch_db"

    @property
    def DATABASE_URL(self) -> str:
        """asyncpg URL used by the SQL registry."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── Stage services ────────────────────────
    # Base URL the four stage routes are appended to, e.g.
    # https://<project>.supabase.co/functions/v1
    STAGE_SERVICE_BASE_URL: str = "http://localhost:54321/functions/v1"
    STAGE_SERVICE_API_KEY: str = ""
    STAGE_TIMEOUT_SECONDS: float = 30.0

    # ── Request guard (batch submissions) ─────
    BATCH_RATE_LIMIT_WINDOW_SECONDS: int = 60
    BATCH_RATE_LIMIT_MAX_REQUESTS: int = 10

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
