"""RouteDB: read/write routing over a main and a primary database.

Every read and default write goes to the main database; writes and whole
transactions can be sent to the primary with ``write_to_primary=True``.

    from routedb import get_client, get_registry

    get_registry().init(metadata=metadata)
    db = get_client()
    await db.product.create(data={"name": "Lamp"}, write_to_primary=True)
"""

from .config import RouteDBSettings, get_logger, get_settings
from .config.validation import validate_environment
from .database import (
    WRITE_METHODS,
    ConnectionRegistry,
    DatabaseClient,
    HealthStatus,
    Operation,
    RoutedClient,
    check_health,
    disconnect_all,
    get_client,
    get_registry,
    install_shutdown_handlers,
    is_write_method,
)
from .exceptions import (
    ClientUnavailableError,
    ConfigurationError,
    DatabaseError,
    RecordNotFoundError,
    RouteDBError,
)

__version__ = "0.1.0"

__all__ = [
    "WRITE_METHODS",
    "ClientUnavailableError",
    "ConfigurationError",
    "ConnectionRegistry",
    "DatabaseClient",
    "DatabaseError",
    "HealthStatus",
    "Operation",
    "RecordNotFoundError",
    "RouteDBError",
    "RouteDBSettings",
    "RoutedClient",
    "__version__",
    "check_health",
    "disconnect_all",
    "get_client",
    "get_logger",
    "get_registry",
    "get_settings",
    "install_shutdown_handlers",
    "is_write_method",
    "validate_environment",
]
