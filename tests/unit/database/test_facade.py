"""Unit tests for the read/write routing facade."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from routedb.database.client import Operation
from routedb.database.facade import (
    RoutedClient,
    RoutedEntity,
    UnavailableClient,
    get_client,
)
from routedb.database.lifecycle import ConnectionRegistry
from routedb.database.routing import READ_METHODS, WRITE_METHODS
from routedb.exceptions import ClientUnavailableError, DatabaseError


class TestWriteRouting:
    """Test routing of write operations."""

    @pytest.mark.asyncio
    async def test_write_to_primary_strips_flag(self, db: RoutedClient) -> None:
        """A flagged write reaches primary with only the domain arguments."""
        await db.product.create(data={"name": "X"}, write_to_primary=True)

        assert db.primary.calls == [("product", "create", {"data": {"name": "X"}})]
        assert db.main.calls == []

    @pytest.mark.asyncio
    async def test_write_defaults_to_main(self, db: RoutedClient) -> None:
        """An unflagged write goes to main."""
        await db.product.create(data={"name": "X"})

        assert db.main.calls == [("product", "create", {"data": {"name": "X"}})]
        assert db.primary.calls == []

    @pytest.mark.asyncio
    async def test_false_flag_goes_to_main(self, db: RoutedClient) -> None:
        """write_to_primary=False is removed and the write goes to main."""
        await db.order.update(
            where={"id": 1}, data={"status": "paid"}, write_to_primary=False
        )

        assert db.main.calls == [
            ("order", "update", {"where": {"id": 1}, "data": {"status": "paid"}})
        ]
        assert db.primary.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", sorted(WRITE_METHODS))
    async def test_every_write_method_honours_flag(
        self, db: RoutedClient, method: str
    ) -> None:
        """All write operations route on the flag and never forward it."""
        await getattr(db.product, method)(where={"id": 7}, write_to_primary=True)
        await getattr(db.product, method)(where={"id": 8})

        assert db.primary.calls == [("product", method, {"where": {"id": 7}})]
        assert db.main.calls == [("product", method, {"where": {"id": 8}})]
        for _, _, args in db.primary.calls + db.main.calls:
            assert "write_to_primary" not in args

    @pytest.mark.asyncio
    async def test_write_returns_underlying_result(self, db: RoutedClient) -> None:
        """The facade returns whatever the chosen client returns."""
        result = await db.product.delete(where={"id": 1}, write_to_primary=True)

        assert result == {
            "client": db.primary.url,
            "entity": "product",
            "method": "delete",
        }


class TestReadRouting:
    """Test routing of read operations."""

    @pytest.mark.asyncio
    async def test_read_goes_to_main_unchanged(self, db: RoutedClient) -> None:
        """A read is forwarded to main with its arguments untouched."""
        await db.product.find_many(where={"active": True}, take=10)

        assert db.main.calls == [
            ("product", "find_many", {"where": {"active": True}, "take": 10})
        ]
        assert db.primary.calls == []

    @pytest.mark.asyncio
    async def test_read_with_flag_still_goes_to_main(self, db: RoutedClient) -> None:
        """A routing flag on a read is meaningless and forwarded as-is."""
        await db.product.find_first(where={"id": 1}, write_to_primary=True)

        assert db.main.calls == [
            ("product", "find_first", {"where": {"id": 1}, "write_to_primary": True})
        ]
        assert db.primary.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", sorted(READ_METHODS))
    async def test_every_read_method_uses_main(
        self, db: RoutedClient, method: str
    ) -> None:
        """No read operation ever reaches primary."""
        await getattr(db.order, method)(where={"id": 3})

        assert db.main.calls == [("order", method, {"where": {"id": 3}})]
        assert db.primary.calls == []


class TestErrorContext:
    """Test error enrichment for forwarded calls."""

    @pytest.mark.asyncio
    async def test_write_error_carries_context(self, db: RoutedClient) -> None:
        """The caller sees the original message plus method and entity."""
        db.main.errors[("product", "create")] = Exception("unique violation")

        with pytest.raises(Exception, match="unique violation") as exc_info:
            await db.product.create(data={"name": "X"})

        message = str(exc_info.value)
        assert "create" in message
        assert "product" in message
        assert message == "unique violation (method: create, entity: product)"

    @pytest.mark.asyncio
    async def test_primary_error_is_not_retried_on_main(self, db: RoutedClient) -> None:
        """A failing primary write propagates without touching main."""
        error = RuntimeError("primary down")
        db.primary.errors[("order", "upsert")] = error

        with pytest.raises(RuntimeError) as exc_info:
            await db.order.upsert(
                where={"id": 1}, create={}, update={}, write_to_primary=True
            )

        assert exc_info.value is error
        assert db.main.calls == []
        assert len(db.primary.calls) == 1

    @pytest.mark.asyncio
    async def test_read_error_carries_context(self, db: RoutedClient) -> None:
        """Read failures are annotated too."""
        db.main.errors[("order", "find_many")] = TimeoutError()

        with pytest.raises(TimeoutError) as exc_info:
            await db.order.find_many()

        assert str(exc_info.value) == "(method: find_many, entity: order)"
        assert any("find_many" in note for note in exc_info.value.__notes__)

    @pytest.mark.asyncio
    async def test_routedb_error_message_is_annotated(self, db: RoutedClient) -> None:
        """Structured errors keep their format with the context appended."""
        db.main.errors[("product", "update")] = DatabaseError(
            message="No product record matches the given filter",
            hint="Check the id",
        )

        with pytest.raises(DatabaseError) as exc_info:
            await db.product.update(where={"id": 99}, data={"name": "Y"})

        assert exc_info.value.message.endswith("(method: update, entity: product)")
        assert str(exc_info.value).startswith("Error: No product record matches")
        assert "Hint: Check the id" in str(exc_info.value)


class TestFallThrough:
    """Test attributes outside the enumerated operations."""

    def test_entity_attribute_falls_through_to_main(self, db: RoutedClient) -> None:
        """Non-operation entity attributes come from main's entity."""
        assert db.product.fields == ("id", "name")

    def test_client_attribute_falls_through_to_main(self, db: RoutedClient) -> None:
        """Client-level utilities are main's, unchanged."""
        assert db.server_version == "fake-16.2"
        assert db.query_raw == db.main.query_raw

    def test_entities_are_routed(self, db: RoutedClient) -> None:
        """Known entities are wrapped in a cached dispatcher."""
        assert isinstance(db.product, RoutedEntity)
        assert db.product is db.product
        assert db.product.name == "product"

    def test_unknown_attribute_raises(self, db: RoutedClient) -> None:
        """Unknown names raise AttributeError from main."""
        with pytest.raises(AttributeError):
            _ = db.customer

    def test_private_names_are_not_forwarded(self, db: RoutedClient) -> None:
        """Underscore names never reach the clients."""
        with pytest.raises(AttributeError):
            _ = db._secret
        with pytest.raises(AttributeError):
            _ = db.product._secret


class TestRunTransaction:
    """Test transaction routing."""

    @pytest.mark.asyncio
    async def test_batch_runs_on_primary(self, db: RoutedClient) -> None:
        """A flagged batch runs entirely on primary."""
        operations = [
            db.operation("product", "create", data={"name": "A"}),
            db.operation("order", "update", where={"id": 1}, data={"total": 5}),
            db.operation("product", "find_many"),
        ]

        results = await db.run_transaction(operations, write_to_primary=True, timeout=5)

        assert len(results) == 3
        assert [call[:2] for call in db.primary.calls] == [
            ("product", "create"),
            ("order", "update"),
            ("product", "find_many"),
        ]
        assert db.main.calls == []
        assert db.main.transactions == []
        assert db.primary.transactions == [(operations, {"timeout": 5})]

    @pytest.mark.asyncio
    async def test_batch_defaults_to_main(self, db: RoutedClient) -> None:
        """An unflagged batch runs entirely on main."""
        operations = [Operation("order", "delete", {"where": {"id": 2}})]

        await db.run_transaction(operations)

        assert db.main.calls == [("order", "delete", {"where": {"id": 2}})]
        assert db.primary.calls == []
        assert db.main.transactions == [(operations, {"timeout": None})]

    @pytest.mark.asyncio
    async def test_options_pass_through(self, db: RoutedClient) -> None:
        """Extra options reach the transaction primitive unmodified."""
        await db.run_transaction(
            [], write_to_primary=True, timeout=2.5, isolation_level="SERIALIZABLE"
        )

        assert db.primary.transactions == [
            ([], {"timeout": 2.5, "isolation_level": "SERIALIZABLE"})
        ]

    @pytest.mark.asyncio
    async def test_callback_receives_chosen_client(self, db: RoutedClient) -> None:
        """A callback transaction runs against the routed client."""
        seen = []

        async def work(tx):
            seen.append(tx)
            return "done"

        assert await db.run_transaction(work, write_to_primary=True) == "done"
        assert seen == [db.primary]

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_reraised(self, db: RoutedClient) -> None:
        """The original error propagates after a diagnostic log entry."""
        error = RuntimeError("deadlock detected")
        db.main.transaction_error = error

        with patch("routedb.database.facade.logger") as mock_logger:
            with pytest.raises(RuntimeError) as exc_info:
                await db.run_transaction([])

        assert exc_info.value is error
        mock_logger.error.assert_called_once()
        message = mock_logger.error.call_args.args[0]
        assert message == "Transaction failed: deadlock detected"
        assert mock_logger.error.call_args.kwargs["target"] == "main"
        assert len(db.main.transactions) == 1


class TestClientFacade:
    """Test client-level helpers."""

    @pytest.mark.asyncio
    async def test_check_health_probes_main_only(self, db: RoutedClient) -> None:
        """The facade health check queries main."""
        result = await db.check_health()

        assert result["status"] == "healthy"
        assert db.main.calls == [("$raw", "query_raw", {"sql": "SELECT 1"})]
        assert db.primary.calls == []

    @pytest.mark.asyncio
    async def test_check_health_uninitialized_registry(self) -> None:
        """An uninitialized registry is reported, not raised."""
        result = await RoutedClient(ConnectionRegistry()).check_health()

        assert result == {
            "status": "unhealthy",
            "details": "Connection registry is not initialized",
        }

    @pytest.mark.asyncio
    async def test_check_health_client_build_failure(self, settings) -> None:
        """A client that cannot be built yields an unhealthy status."""

        def broken_factory(url: str) -> None:
            raise RuntimeError("driver missing")

        registry = ConnectionRegistry().init(
            settings=settings, client_factory=broken_factory
        )

        result = await RoutedClient(registry).check_health()

        assert result == {"status": "unhealthy", "details": "driver missing"}

    @pytest.mark.asyncio
    async def test_disconnect_all_closes_both(self, db: RoutedClient) -> None:
        """disconnect_all closes main and primary."""
        main, primary = db.main, db.primary

        await db.disconnect_all()
        await db.disconnect_all()

        assert main.disconnects == 2
        assert primary.disconnects == 2

    def test_operation_builds_prepared_call(self, db: RoutedClient) -> None:
        """operation() returns a prepared Operation."""
        operation = db.operation("product", "create", data={"name": "A"})
        assert operation == Operation("product", "create", {"data": {"name": "A"}})

    def test_operation_rejects_routing_flag(self, db: RoutedClient) -> None:
        """Routing is chosen per transaction, not per prepared operation."""
        with pytest.raises(ValueError, match="pass it to run_transaction"):
            db.operation("product", "create", data={"name": "A"}, write_to_primary=True)

    def test_get_client_returns_facade(self, registry) -> None:
        """On a server, get_client returns a RoutedClient."""
        client = get_client(registry)
        assert isinstance(client, RoutedClient)
        assert client.registry is registry

    def test_get_client_off_server(self, monkeypatch) -> None:
        """Outside a server process every access raises."""
        monkeypatch.setattr("routedb.database.facade.is_server_context", lambda: False)

        client = get_client()

        assert isinstance(client, UnavailableClient)
        with pytest.raises(ClientUnavailableError, match="not available"):
            _ = client.product
