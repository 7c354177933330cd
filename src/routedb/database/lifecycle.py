"""Process-wide ownership of the main and primary database clients.

The registry is initialized once at startup and hands out the same two
clients for the life of the process:

    registry = get_registry().init(metadata=metadata)
    main = registry.get_main()          # reads and default writes
    primary = registry.get_primary()    # writes with write_to_primary=True
    await registry.shutdown()

Both clients are built on first access. Outside production the registry
survives ``importlib.reload`` of this module, so development reloaders keep
the existing pools instead of opening new ones on every reload.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from functools import partial
from typing import Any

from sqlalchemy import MetaData

from routedb.config import RouteDBSettings, get_logger, get_settings
from routedb.config.validation import validate_environment
from routedb.database.client import DatabaseClient
from routedb.database.engine import build_engine_options, mask_url
from routedb.exceptions import (
    ClientUnavailableError,
    ConfigurationError,
    DatabaseError,
)
from routedb.runtime import is_server_context

logger = get_logger(__name__)

ClientFactory = Callable[[str], Any]


def create_client(url: str, settings: RouteDBSettings, metadata: MetaData) -> DatabaseClient:
    """Build a client for ``url`` with engine options tuned for its backend."""
    return DatabaseClient(url, metadata, **build_engine_options(url, settings))


class ConnectionRegistry:
    """Owns the main and primary clients for one process."""

    def __init__(self) -> None:
        """Create an empty, uninitialized registry."""
        self.settings: RouteDBSettings | None = None
        self._factory: ClientFactory | None = None
        self._main: Any = None
        self._primary: Any = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        """Whether ``init()`` has completed."""
        return self.settings is not None

    @property
    def reload_safe(self) -> bool:
        """Whether a module reload should keep this registry."""
        return self.settings is not None and not self.settings.is_production

    def init(
        self,
        settings: RouteDBSettings | None = None,
        metadata: MetaData | None = None,
        client_factory: ClientFactory | None = None,
    ) -> ConnectionRegistry:
        """Validate configuration and prepare client construction.

        Calling ``init`` on an initialized registry does nothing.

        Args:
            settings: Settings to use (defaults to the global settings)
            metadata: Tables exposed as entities by the default client factory
            client_factory: Callable building a client from a URL

        Returns:
            This registry

        Raises:
            ClientUnavailableError: Outside a server-side process
            ConfigurationError: If configuration is missing or malformed
        """
        if self.initialized:
            logger.debug("Connection registry already initialized")
            return self

        if not is_server_context():
            raise ClientUnavailableError(
                message="Database clients cannot be created in this process",
                hint="Initialize the registry from server-side code only",
            )

        settings = settings or get_settings()
        validate_environment(settings)

        if client_factory is None:
            if metadata is None:
                raise ConfigurationError(
                    message="No entity metadata provided",
                    hint="Pass metadata=... or a client_factory to init()",
                )
            client_factory = partial(create_client, settings=settings, metadata=metadata)

        self._factory = client_factory
        self.settings = settings

        logger.info(
            "Connection registry initialized",
            environment=settings.environment,
            main=mask_url(settings.database_url),
            primary=mask_url(settings.primary_url),
            primary_configured=settings.database_primary_url is not None,
        )
        return self

    def _require_settings(self) -> RouteDBSettings:
        if self.settings is None:
            raise DatabaseError(
                message="Connection registry is not initialized",
                hint="Call get_registry().init(metadata=...) during startup",
            )
        return self.settings

    def _build(self, role: str, url: str | None) -> Any:
        if self._factory is None or url is None:
            raise DatabaseError(
                message=f"Cannot build the {role} client without a target URL",
            )
        client = self._factory(url)
        logger.debug("Database client created", role=role, url=mask_url(url))
        return client

    def get_main(self) -> Any:
        """Return the main client, building it on first access."""
        if self._main is None:
            settings = self._require_settings()
            with self._lock:
                if self._main is None:
                    self._main = self._build("main", settings.database_url)
        return self._main

    def get_primary(self) -> Any:
        """Return the primary client, building it on first access.

        Targets ``database_primary_url`` when configured, otherwise the main URL.
        """
        if self._primary is None:
            settings = self._require_settings()
            with self._lock:
                if self._primary is None:
                    self._primary = self._build("primary", settings.primary_url)
        return self._primary

    async def shutdown(self) -> None:
        """Disconnect every constructed client concurrently.

        Failures are logged, never raised. Clients that were never built are
        left alone, and repeated calls are harmless.
        """
        clients = {
            role: client
            for role, client in (("main", self._main), ("primary", self._primary))
            if client is not None
        }
        if not clients:
            logger.debug("No database clients to disconnect")
            return

        results = await asyncio.gather(
            *(client.disconnect() for client in clients.values()),
            return_exceptions=True,
        )

        failed = False
        for role, result in zip(clients, results, strict=True):
            if isinstance(result, BaseException):
                failed = True
                logger.error(
                    "Error disconnecting database client",
                    role=role,
                    error=str(result),
                )
        if not failed:
            logger.info("Database clients disconnected successfully")


def _surviving_registry() -> ConnectionRegistry:
    # importlib.reload re-executes this module in its existing namespace
    previous = globals().get("_registry")
    if previous is not None and getattr(previous, "reload_safe", False):
        return previous
    return ConnectionRegistry()


_registry: ConnectionRegistry = _surviving_registry()


def get_registry() -> ConnectionRegistry:
    """Return the process-wide registry."""
    return _registry


def reset_registry() -> ConnectionRegistry:
    """Replace the process-wide registry with an empty one.

    Existing clients are dropped without disconnecting; use it in tests only.
    """
    global _registry
    _registry = ConnectionRegistry()
    return _registry
