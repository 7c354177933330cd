"""Database clients, routing facade, and their lifecycle."""

from routedb.database.client import DatabaseClient, EntityDelegate, Operation
from routedb.database.engine import build_engine_options, to_async_url
from routedb.database.facade import (
    RoutedClient,
    RoutedEntity,
    UnavailableClient,
    get_client,
)
from routedb.database.health import HealthStatus, check_health
from routedb.database.lifecycle import (
    ConnectionRegistry,
    get_registry,
    reset_registry,
)
from routedb.database.routing import (
    READ_METHODS,
    WRITE_METHODS,
    is_write_method,
)
from routedb.database.shutdown import disconnect_all, install_shutdown_handlers

__all__ = [
    "READ_METHODS",
    "WRITE_METHODS",
    "ConnectionRegistry",
    "DatabaseClient",
    "EntityDelegate",
    "HealthStatus",
    "Operation",
    "RoutedClient",
    "RoutedEntity",
    "UnavailableClient",
    "build_engine_options",
    "check_health",
    "disconnect_all",
    "get_client",
    "get_registry",
    "install_shutdown_handlers",
    "is_write_method",
    "reset_registry",
    "to_async_url",
]
