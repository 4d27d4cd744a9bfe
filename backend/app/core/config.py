from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LOCALES = frozenset({"ru", "en"})
DEFAULT_SQLITE_URL = "sqlite:///./data/journal.db"


def _ensure_sqlite_path(url: str) -> None:
    path_part = url.split("///", maxsplit=1)[-1]
    if path_part in {"", ":memory:"}:
        return
    Path(path_part).parent.mkdir(parents=True, exist_ok=True)


def normalize_database_url(raw_url: str | None) -> str:
    """Map plain driver URLs onto the async drivers the engine needs."""

    url = str(raw_url or DEFAULT_SQLITE_URL)
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    if url.startswith("sqlite+aiosqlite:///"):
        _ensure_sqlite_path(url)
    return url


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/journal.db",
        alias="DATABASE_URL",
    )
    log_file: Path = Field(default=Path("logs/journal.log"))
    default_locale: str = Field(default="ru", alias="DEFAULT_LOCALE")

    # Text generation collaborator
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model_insights: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL_INSIGHTS")
    insights_max_tokens: int = Field(default=1200, alias="INSIGHTS_MAX_TOKENS")
    insights_generation_timeout_seconds: float = Field(
        default=45.0,
        alias="INSIGHTS_GENERATION_TIMEOUT_SEC",
    )
    insights_retry_attempts: int = Field(default=2, alias="INSIGHTS_RETRY_ATTEMPTS")
    insights_retry_delay_seconds: float = Field(default=0.5, alias="INSIGHTS_RETRY_DELAY_SEC")
    insights_max_entry_chars: int = Field(default=1500, alias="INSIGHTS_MAX_ENTRY_CHARS")

    version: str = Field(default_factory=lambda: Settings._load_version())

    @staticmethod
    def _load_version() -> str:
        version_env = os.getenv("VERSION")
        if version_env:
            return version_env
        version_file = Path("VERSION")
        if version_file.exists():
            return version_file.read_text(encoding="utf-8").strip()
        return "0.0.0"

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Path | str) -> Path:
        path = Path(value)
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("default_locale", mode="before")
    @classmethod
    def _validate_locale(cls, value: str | None) -> str:
        if not value:
            return "ru"
        normalized = str(value).lower()
        if normalized not in SUPPORTED_LOCALES:
            return "ru"
        return normalized

    @field_validator("insights_generation_timeout_seconds", mode="before")
    @classmethod
    def _validate_generation_timeout(cls, value: float | str | None) -> float:
        if value is None:
            return 45.0
        timeout = float(value)
        return min(max(timeout, 5.0), 120.0)

    @field_validator("insights_retry_attempts", mode="before")
    @classmethod
    def _validate_retry_attempts(cls, value: int | str | None) -> int:
        if value is None:
            return 2
        return max(int(value), 1)

    @field_validator("database_url", mode="before")
    @classmethod
    def _validate_database_url(cls, value: str | None) -> str:
        return normalize_database_url(value)


def normalize_locale(locale: str | None, default: str = "ru") -> str:
    if locale and locale.lower() in SUPPORTED_LOCALES:
        return locale.lower()
    return default


@lru_cache
def get_settings() -> Settings:
    """Cached settings accessor."""

    return Settings()
