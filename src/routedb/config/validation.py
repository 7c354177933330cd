"""Startup validation of the database environment."""

from __future__ import annotations

from routedb.config.settings import RouteDBSettings
from routedb.exceptions import ConfigurationError
from routedb.runtime import is_server_context

SUPPORTED_SCHEMES = ("postgresql", "mysql")

# Setting attribute -> (reported variable, prefixed alternative)
_REQUIRED = {
    "database_url": ("DATABASE_URL", "ROUTEDB_DATABASE_URL"),
    "environment": ("APP_ENV", "ROUTEDB_ENV"),
}


def url_scheme(url: str) -> str:
    """Return the dialect part of a URL scheme (``postgresql+asyncpg`` -> ``postgresql``)."""
    scheme, sep, _ = url.partition("://")
    if not sep:
        return ""
    return scheme.split("+", 1)[0].lower()


def is_supported_url(url: str) -> bool:
    """Check whether ``url`` points at a supported database engine."""
    return url_scheme(url) in SUPPORTED_SCHEMES


def validate_environment(settings: RouteDBSettings) -> None:
    """Fail fast when the database configuration is missing or malformed.

    Skipped entirely outside a server-side process.

    Args:
        settings: Settings to validate

    Raises:
        ConfigurationError: If a required value is missing or a URL uses an
            unsupported scheme
    """
    if not is_server_context():
        return

    for attribute, (env_name, alternative) in _REQUIRED.items():
        if not getattr(settings, attribute):
            raise ConfigurationError(
                message=f"Missing required env variable: {env_name}",
                hint=f"Set {env_name} (or {alternative}) before startup",
                details={"setting": attribute},
            )

    targets = {"DATABASE_URL": settings.database_url}
    if settings.database_primary_url:
        targets["DATABASE_PRIMARY_URL"] = settings.database_primary_url

    for env_name, url in targets.items():
        if url and not is_supported_url(url):
            raise ConfigurationError(
                message=(
                    f"Invalid {env_name}. Must start with postgresql:// or mysql://"
                ),
                hint="A driver suffix such as postgresql+asyncpg:// is also accepted",
                details={"scheme": url_scheme(url) or "<none>"},
            )
