"""Application settings and configuration management."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    DB_PATH: str = Field(default="data/assessments.db")
    CHECKPOINT_DIR: str = Field(default="data/checkpoints")
    APP_CONFIG_PATH: str = "app_config.json"

    MAX_FOLLOW_UPS: int = Field(default=2, ge=0)

    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    RETRY_BASE_SECONDS: float = Field(default=1.0, ge=0.0)
    RETRY_MAX_SECONDS: float = Field(default=8.0, ge=0.0)

    RESUME_WINDOW_HOURS: float = 24.0
    PARTIAL_RETENTION_DAYS: int = 7

    MEDIA_INLINE_LIMIT_BYTES: int = 500 * 1024
    UPLOAD_MEDIA_IMMEDIATELY: bool = True
    MEDIA_BACKEND: str = "local"
    MEDIA_LOCAL_DIR: str = "data/media"
    MEDIA_BASE_URL: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET: str = ""

    SCENARIO_CATALOG_PATH: str = ""
    SCENARIO_LIMIT: int = Field(default=0, ge=0)

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True, extra="ignore")


settings = Settings()
