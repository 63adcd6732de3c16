"""
Configuration and settings for the library backend.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")

    # Application state document
    state_id: str = Field(default="main")
    data_dir: str = Field(default="data")
    backup_dir: Optional[str] = Field(default=None)

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage for backups
    backup_bucket: Optional[str] = Field(default=None)
    backup_region: Optional[str] = Field(default=None)
    backup_endpoint: Optional[str] = Field(default=None)
    backup_prefix: str = Field(default="backups/")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Primary chat provider (OpenAI Responses API)
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-5")
    openai_temperature: Optional[float] = Field(default=0.4)
    openai_timeout_seconds: float = Field(default=20.0)

    # Fallback chat provider (Gemini), models tried in order
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_models: str = Field(default="gemini-2.5-flash,gemini-2.0-flash")
    gemini_timeout_seconds: float = Field(default=20.0)

    chat_history_limit: int = Field(default=12, ge=0)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def gemini_model_list(self) -> list[str]:
        return [m.strip() for m in self.gemini_models.split(",") if m.strip()]

    @property
    def resolved_backup_dir(self) -> str:
        return self.backup_dir or os.path.join(self.data_dir, "backups")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
