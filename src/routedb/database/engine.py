"""SQLAlchemy engine options for RouteDB clients."""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import URL, make_url

from routedb.config.settings import RouteDBSettings

# Async drivers substituted for bare dialect names
ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
}


def to_async_url(url: str | URL) -> URL:
    """Return ``url`` with an async driver selected when none is given.

    Args:
        url: Database URL, e.g. ``postgresql://user@host/db``

    Returns:
        Parsed URL, e.g. ``postgresql+asyncpg://user@host/db``
    """
    parsed = make_url(url)
    driver = ASYNC_DRIVERS.get(parsed.drivername)
    if driver:
        parsed = parsed.set(drivername=driver)
    return parsed


def is_postgres(url: str | URL) -> bool:
    """Check whether ``url`` targets PostgreSQL."""
    return make_url(url).get_backend_name() == "postgresql"


def build_engine_options(url: str | URL, settings: RouteDBSettings) -> dict[str, Any]:
    """Build ``create_async_engine`` keyword arguments for a client.

    Postgres targets sit behind PgBouncer: each client is capped at a single
    pooled connection and asyncpg's prepared statement cache is disabled.

    Args:
        url: Target database URL
        settings: Settings providing pool sizing for other backends

    Returns:
        Keyword arguments for ``create_async_engine``
    """
    options: dict[str, Any] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,
        "pool_timeout": settings.database_pool_timeout,
        "pool_recycle": settings.database_pool_recycle,
    }

    parsed = to_async_url(url)
    if is_postgres(parsed):
        options.update(pool_size=1, max_overflow=0)
        if parsed.drivername == "postgresql+asyncpg":
            options["connect_args"] = {"statement_cache_size": 0}
    else:
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    return options


def mask_url(url: str | URL | None) -> str | None:
    """Render ``url`` with its password hidden, for logs and CLI output."""
    if url is None:
        return None
    return make_url(url).render_as_string(hide_password=True)
