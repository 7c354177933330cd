"""Read/write routing facade over the main and primary clients.

Application code talks to a single ``RoutedClient``:

    db = get_client()
    products = await db.product.find_many(where={"active": True})
    await db.product.create(data={"name": "Lamp"})                      # main
    await db.product.create(data={"name": "Lamp"}, write_to_primary=True)  # primary

Reads always go to the main client. Writes go to the main client unless
``write_to_primary=True`` is passed. The flag is a separate keyword, so it
is never forwarded to the underlying client.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from routedb.config import get_logger
from routedb.database.client import Operation, TransactionCallback
from routedb.database.health import HealthStatus, check_health, failure_status
from routedb.database.lifecycle import ConnectionRegistry, get_registry
from routedb.database.routing import is_write_method
from routedb.database.shutdown import disconnect_all
from routedb.exceptions import ClientUnavailableError, annotate_error
from routedb.runtime import is_server_context

logger = get_logger(__name__)


class RoutedEntity:
    """Per-entity dispatcher choosing the client for every operation."""

    def __init__(self, router: RoutedClient, name: str) -> None:
        """Initialize the dispatcher.

        Args:
            router: Facade resolving the main and primary clients
            name: Entity name on the underlying clients
        """
        self._router = router
        self.name = name

    def __repr__(self) -> str:
        return f"RoutedEntity({self.name!r})"

    def __getattr__(self, name: str) -> Any:
        # Anything outside the enumerated operations is served by main as-is
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(getattr(self._router.main, self.name), name)

    async def _forward(self, client: Any, method: str, args: dict[str, Any]) -> Any:
        target = getattr(getattr(client, self.name), method)
        try:
            return await target(**args)
        except Exception as e:
            annotate_error(e, method, self.name)
            raise

    async def _read(self, method: str, args: dict[str, Any]) -> Any:
        return await self._forward(self._router.main, method, args)

    async def _write(
        self, method: str, args: dict[str, Any], write_to_primary: bool
    ) -> Any:
        if not is_write_method(method):
            raise ValueError(f"'{method}' is not a write operation")
        if write_to_primary:
            logger.debug("Routing write to primary", entity=self.name, method=method)
            return await self._forward(self._router.primary, method, args)
        return await self._forward(self._router.main, method, args)

    # Reads

    async def find_unique(self, **args: Any) -> Any:
        return await self._read("find_unique", args)

    async def find_unique_or_raise(self, **args: Any) -> Any:
        return await self._read("find_unique_or_raise", args)

    async def find_first(self, **args: Any) -> Any:
        return await self._read("find_first", args)

    async def find_first_or_raise(self, **args: Any) -> Any:
        return await self._read("find_first_or_raise", args)

    async def find_many(self, **args: Any) -> Any:
        return await self._read("find_many", args)

    async def count(self, **args: Any) -> Any:
        return await self._read("count", args)

    # Writes

    async def create(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("create", args, write_to_primary)

    async def create_many(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("create_many", args, write_to_primary)

    async def update(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("update", args, write_to_primary)

    async def update_many(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("update_many", args, write_to_primary)

    async def delete(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("delete", args, write_to_primary)

    async def delete_many(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("delete_many", args, write_to_primary)

    async def upsert(self, *, write_to_primary: bool = False, **args: Any) -> Any:
        return await self._write("upsert", args, write_to_primary)


class RoutedClient:
    """Single entry point routing every call to the main or primary client."""

    def __init__(self, registry: ConnectionRegistry | None = None) -> None:
        """Initialize the facade.

        Args:
            registry: Registry owning the clients (defaults to the process registry)
        """
        self._registry = registry or get_registry()
        self._entities: dict[str, RoutedEntity] = {}

    def __repr__(self) -> str:
        return f"RoutedClient(entities={sorted(self._entities)})"

    @property
    def registry(self) -> ConnectionRegistry:
        """Registry owning the underlying clients."""
        return self._registry

    @property
    def main(self) -> Any:
        """Client serving reads and default writes."""
        return self._registry.get_main()

    @property
    def primary(self) -> Any:
        """Client serving writes routed with ``write_to_primary=True``."""
        return self._registry.get_primary()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        entity = self._entities.get(name)
        if entity is not None:
            return entity

        main = self.main
        if name in main.entities:
            entity = RoutedEntity(self, name)
            self._entities[name] = entity
            return entity
        return getattr(main, name)

    def operation(self, entity: str, method: str, **args: Any) -> Operation:
        """Prepare an operation for ``run_transaction``.

        Raises:
            ValueError: If ``write_to_primary`` is passed; a transaction is
                routed as a whole by ``run_transaction``
        """
        if "write_to_primary" in args:
            raise ValueError(
                "write_to_primary cannot be set per operation; "
                "pass it to run_transaction() instead"
            )
        return Operation(entity=entity, method=method, args=args)

    async def run_transaction(
        self,
        operations: Sequence[Operation] | TransactionCallback,
        *,
        write_to_primary: bool = False,
        timeout: float | None = None,
        **options: Any,
    ) -> Any:
        """Run a transaction entirely on the main or the primary client.

        Args:
            operations: Prepared operations or an async callable receiving a
                transaction-bound client
            write_to_primary: Run on the primary client instead of main
            timeout: Seconds before the transaction is rolled back
            **options: Passed through to the client's transaction primitive

        Returns:
            Whatever the client's ``transaction`` returns

        Raises:
            Exception: The original error, after logging it
        """
        target = "primary" if write_to_primary else "main"
        client = self.primary if write_to_primary else self.main
        try:
            return await client.transaction(operations, timeout=timeout, **options)
        except Exception as e:
            logger.error(
                f"Transaction failed: {str(e) or 'Unknown error'}",
                target=target,
                error_type=type(e).__name__,
            )
            raise

    async def check_health(self) -> HealthStatus:
        """Probe the main client.

        Failing to build the client is reported as ``unhealthy`` too.
        """
        try:
            client = self.main
        except Exception as e:
            return failure_status(e)
        return await check_health(client)

    async def disconnect_all(self) -> None:
        """Disconnect both clients; errors are logged, never raised."""
        await disconnect_all(self._registry)


class UnavailableClient:
    """Stand-in returned outside a server-side process."""

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        raise ClientUnavailableError(
            message="The database client is not available in this process",
            hint="Use the client from server-side code only",
            details={"attribute": name},
        )


def get_client(registry: ConnectionRegistry | None = None) -> RoutedClient | UnavailableClient:
    """Return the routing facade, or an unavailable stand-in off the server."""
    if not is_server_context():
        return UnavailableClient()
    return RoutedClient(registry)
