from __future__ import annotations

import json
from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict

DEFAULT_ORIGINS = ["http://localhost", "http://localhost:5173", "http://127.0.0.1:5173"]


class _CommaListEnvSettingsSource(EnvSettingsSource):
    """Accept ALLOW_ORIGINS as a comma-separated string as well as JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


class _CommaListDotEnvSettingsSource(DotEnvSettingsSource):
    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise

class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Merit Points API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", description="Logging level")
    allow_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))

    # Database
    database_url: str = Field(
        default="sqlite:///./meritpoints.db",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    # Scoring
    base_score: int = Field(default=70, description="Score every student starts a term with")

    # Activity listing
    default_page_size: int = Field(default=12, description="Page size when the caller sends none")
    min_page_size: int = Field(default=5, description="Smallest page size a caller may request")
    max_page_size: int = Field(default=50, description="Largest page size a caller may request")
    description_search_chars: int = Field(
        default=4000,
        description="Leading characters of an activity description scanned by keyword search",
    )

    # Lifecycle rules
    registration_requires_started: bool = Field(
        default=True,
        description=(
            "Only accept registrations between start_at and end_at; "
            "turn off to let students sign up ahead of the start"
        ),
        validation_alias=AliasChoices("REGISTRATION_REQUIRES_STARTED"),
    )
    allow_reopen_cancelled: bool = Field(
        default=False,
        description="Allow a CANCELLED activity to be moved back to OPEN or CLOSED",
        validation_alias=AliasChoices("ALLOW_REOPEN_CANCELLED"),
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if isinstance(value, str) and value.strip():
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(DEFAULT_ORIGINS)

    @model_validator(mode="after")
    def check_page_bounds(self) -> "Settings":
        if self.min_page_size < 1 or self.max_page_size < self.min_page_size:
            raise ValueError("page size bounds must satisfy 1 <= min_page_size <= max_page_size")
        return self

    def clamp_page_size(self, page_size: int | None) -> int:
        if not page_size:
            page_size = self.default_page_size
        return max(self.min_page_size, min(self.max_page_size, page_size))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _CommaListEnvSettingsSource(settings_cls),
            _CommaListDotEnvSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
