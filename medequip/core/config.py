"""Environment-driven configuration for the reservation service.

Every setting is read once when the module is imported. Values come from the
process environment first and then from ``.env``/``.env.local`` files, so a
developer can boot the API locally without exporting anything.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Medical Equipment Reservations"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    TZ: str = "Asia/Tokyo"

    # SQLite under DATA_DIR unless a full URL is supplied.
    DB_URL: str = Field(
        default="",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    # When false the store fetches broadly and the availability engine does all
    # filtering in memory (document-store behaviour).
    PUSHDOWN_FILTERS: bool = True

    # ---- admin authentication
    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    AUTH_ALLOW_API_KEY: bool = True
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "change-me"
    # bcrypt hash; takes precedence over ADMIN_PASSWORD when set
    ADMIN_PASSWORD_HASH: str = ""

    ALLOWED_ORIGINS: str = ""

    # Equipment in these categories never runs out (consumables).
    UNLIMITED_CATEGORY_NAMES: str = "消耗品"

    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @model_validator(mode="after")
    def default_db_url(self) -> "AppSettings":
        if not self.DB_URL:
            self.DB_URL = f"sqlite:///{self.DATA_DIR}/medequip.db"
        return self

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @property
    def allowed_origins(self) -> list[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    @property
    def unlimited_category_names(self) -> set[str]:
        return set(_split_csv(self.UNLIMITED_CATEGORY_NAMES))


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
