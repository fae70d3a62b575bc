"""
Settings for the hvp2h5p command line tool.

Priority order (highest to lowest):
1. Keyword overrides (command line options)
2. Environment variables (HVP2H5P_* prefix)
3. Built-in defaults

Example:
    >>> settings = get_settings(database_url="sqlite+aiosqlite:///site.db")
    >>> settings.site_url
    'http://localhost'
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("error", "warning", "info", "debug")


class MigratorSettings(BaseSettings):
    """Runtime configuration of a migration run."""

    database_url: str = Field(
        default="sqlite+aiosqlite:///hvp2h5p.db",
        description="SQLAlchemy async database URL",
    )
    site_url: str = Field(
        default="http://localhost",
        description="Public base URL of the site, used to build embed links",
    )
    log_level: str = Field(default="warning", description="error, warning, info or debug")
    enable_tracing: bool = Field(default=True, description="Emit OpenTelemetry spans")
    maintenance_mode: bool = Field(
        default=False, description="Refuse to migrate while the site is in maintenance"
    )
    default_limit: int = Field(default=100, gt=0, description="Records per batch")
    default_keeporiginal: int = Field(default=1, description="Default retention policy code")
    default_copy2cb: int = Field(default=1, description="Default copy policy code")

    model_config = SettingsConfigDict(
        env_prefix="HVP2H5P_",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level

    @field_validator("site_url")
    @classmethod
    def _strip_site_url(cls, value: str) -> str:
        return value.rstrip("/")


def get_settings(**overrides: Any) -> MigratorSettings:
    """
    Build settings from the environment, applying non-None overrides.

    Args:
        **overrides: Field values that win over the environment

    Returns:
        Validated settings
    """
    return MigratorSettings(**{key: value for key, value in overrides.items() if value is not None})


__all__ = ["LOG_LEVELS", "MigratorSettings", "get_settings"]
