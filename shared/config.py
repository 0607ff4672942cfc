"""
Shared configuration management for the Passport gating service.
"""

from datetime import date
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PASSPORT_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/forum")

    # Security
    admin_api_key: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    # Gitcoin Passport
    enabled: bool = Field(default=False)
    api_url: str = Field(default="https://api.scorer.gitcoin.co")
    api_key: Optional[str] = Field(default=None)
    scorer_id: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=10.0, gt=0)

    # Gating
    create_account_min_score: float = Field(default=0.0, ge=0)
    bypass_window_start: Optional[date] = Field(default=None)
    bypass_window_days: Optional[int] = Field(default=None, ge=0)
    score_max_age_seconds: Optional[int] = Field(default=None, gt=0)

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)

    @field_validator("bypass_window_start", mode="before")
    @classmethod
    def _blank_date_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
