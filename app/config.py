"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", case_sensitive=False)

    app_port: int = Field(8000, alias="APP_PORT")
    kb_request_timeout_seconds: float = Field(20.0, alias="KB_REQUEST_TIMEOUT_SECONDS")
    kb_request_retries: int = Field(3, ge=1, alias="KB_REQUEST_RETRIES")
    kb_backoff_seconds: list[float] = Field(
        default_factory=lambda: [0.5, 1.0, 2.0], alias="KB_BACKOFF_SECONDS"
    )
    kb_rate_limit_seconds: float = Field(0.0, ge=0, alias="KB_RATE_LIMIT_SECONDS")
    kb_user_agent: str = Field("kb-search/0.1 (+knowledge base search)", alias="KB_USER_AGENT")
    kb_progress_every: int = Field(25, ge=1, alias="KB_PROGRESS_EVERY")
    kb_fetch_workers: int = Field(1, ge=1, le=16, alias="KB_FETCH_WORKERS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
