"""RouteDB configuration settings."""

from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from routedb.exceptions import ConfigurationError, check_config_keys

PRODUCTION_ENVIRONMENTS = frozenset({"production", "prod"})


class RouteDBSettings(BaseSettings):
    """RouteDB configuration settings.

    Settings are loaded with the following precedence (highest to lowest):
    1. Keyword arguments (or config file values via ``from_file``)
    2. Environment variables (``ROUTEDB_`` prefixed, plus the conventional
       ``DATABASE_URL``, ``DATABASE_PRIMARY_URL`` and ``APP_ENV`` names)
    3. .env file in the current directory
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="ROUTEDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Connection targets
    database_url: str | None = Field(
        default=None,
        description="Main database URL, used for reads and default writes",
        validation_alias=AliasChoices(
            "database_url", "ROUTEDB_DATABASE_URL", "DATABASE_URL"
        ),
    )
    database_primary_url: str | None = Field(
        default=None,
        description="Primary database URL for explicit writes (defaults to main)",
        validation_alias=AliasChoices(
            "database_primary_url",
            "ROUTEDB_DATABASE_PRIMARY_URL",
            "DATABASE_PRIMARY_URL",
        ),
    )
    environment: str | None = Field(
        default=None,
        description="Runtime mode (production, development, test)",
        validation_alias=AliasChoices("environment", "ROUTEDB_ENV", "APP_ENV"),
    )

    # Engine settings for non-Postgres targets
    database_pool_size: int = Field(
        default=5,
        description="Connections kept per client (Postgres targets are capped at 1)",
        ge=1,
    )
    database_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed above the pool size",
        ge=0,
    )
    database_pool_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for a pooled connection",
        ge=0.1,
    )
    database_pool_recycle: int = Field(
        default=3600,
        description="Recycle pooled connections after this many seconds (-1 = never)",
        ge=-1,
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement emitted by the engines",
    )

    # Debug settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Logging settings
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        pattern="^(?i)(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    log_format: str = Field(
        default="console",
        description="Log output format (console, json, structured)",
        pattern="^(?i)(console|json|structured)$",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional log file path",
    )

    @field_validator("database_url", "database_primary_url", "environment")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty or whitespace-only values as unset."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("environment")
    @classmethod
    def normalize_environment(cls, v: str | None) -> str | None:
        """Normalize runtime mode to lowercase."""
        return v.lower() if v else v

    @field_validator("log_file", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path | None:
        """Expand environment variables and ~ in the log file path."""
        if v is None:
            return None
        if isinstance(v, str):
            return Path(os.path.expandvars(v)).expanduser().resolve()
        if isinstance(v, Path):
            return v.resolve()
        raise ValueError(
            f"log_file must be a string or Path, got {type(v).__name__}: {v!r}"
        )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Normalize log level to uppercase for case-insensitive handling."""
        if isinstance(v, str):
            return v.upper()
        raise ValueError(f"log_level must be a string, got {type(v).__name__}")

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: Any) -> str:
        """Normalize log format to lowercase for case-insensitive handling."""
        if isinstance(v, str):
            return v.lower()
        raise ValueError(f"log_format must be a string, got {type(v).__name__}")

    @property
    def is_production(self) -> bool:
        """Whether the runtime mode is production."""
        return self.environment in PRODUCTION_ENVIRONMENTS

    @property
    def primary_url(self) -> str | None:
        """Target of the primary client, falling back to the main URL."""
        return self.database_primary_url or self.database_url

    @classmethod
    def from_env(cls) -> RouteDBSettings:
        """Create settings from environment variables."""
        return cls()

    @classmethod
    def from_file(cls, config_path: Path | str) -> RouteDBSettings:
        """Load settings from a configuration file.

        Environment variables still apply to keys the file leaves out.

        Args:
            config_path: Path to configuration file (YAML, TOML, or JSON).

        Returns:
            Settings loaded from the file.

        Raises:
            ConfigurationError: If file format is not supported.
            FileNotFoundError: If config file doesn't exist.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        suffix = config_path.suffix.lower()

        if suffix in {".yml", ".yaml"}:
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        elif suffix == ".json":
            with config_path.open(encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise ConfigurationError(
                message=f"Unsupported configuration file format: {suffix}",
                hint="Use one of the supported formats: .yml, .yaml, .toml, or .json",
                details={
                    "file": str(config_path),
                    "detected_format": suffix,
                    "supported_formats": [".yml", ".yaml", ".toml", ".json"],
                },
            )

        check_config_keys(data)

        return cls(**data)


# Global settings instance
_settings: RouteDBSettings | None = None


def get_settings() -> RouteDBSettings:
    """Get the global settings instance.

    Reads ``ROUTEDB_CONFIG`` for an optional config file, otherwise loads from
    the environment only.

    Returns:
        Global RouteDBSettings instance.
    """
    global _settings
    if _settings is None:
        config_file = os.getenv("ROUTEDB_CONFIG")
        if config_file:
            _settings = RouteDBSettings.from_file(config_file)
        else:
            _settings = RouteDBSettings.from_env()
    return _settings


def set_settings(settings: RouteDBSettings) -> None:
    """Set the global settings instance.

    Args:
        settings: Settings instance to use globally.
    """
    global _settings
    _settings = settings


def clear_settings_cache() -> None:
    """Clear the global settings cache.

    This forces get_settings() to re-read from environment variables
    on the next call. Useful for testing when environment variables are
    changed via monkeypatch.
    """
    global _settings
    _settings = None


def reset_settings() -> None:
    """Reset the global settings instance."""
    clear_settings_cache()
