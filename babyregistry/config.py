"""
Configuration and settings for the registry API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_KEY = "registry-admin-dev-key"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected). Absent means "no database" mode.
    database_url: Optional[str] = Field(default=None)
    database_connect_timeout: int = Field(default=5, ge=1)

    # Flat JSON documents, used when no database is configured.
    data_dir: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Cross-origin access for the frontend
    frontend_url: str = Field(default="*")

    # Admin shared secret and login allow-list
    admin_key: str = Field(default=DEFAULT_ADMIN_KEY)
    admin_email_1: str = Field(default="admin@example.com")
    admin_password_1: str = Field(default="change-me")
    admin_email_2: Optional[str] = Field(default=None)
    admin_password_2: Optional[str] = Field(default=None)

    # Identical (name, message) pairs inside this window are one submission.
    duplicate_window_seconds: float = Field(default=10.0, ge=0)

    def admin_credentials(self) -> list[tuple[str, str]]:
        credentials = [(self.admin_email_1, self.admin_password_1)]
        if self.admin_email_2 and self.admin_password_2:
            credentials.append((self.admin_email_2, self.admin_password_2))
        return credentials


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
