"""Unit tests for the database health probe."""

from __future__ import annotations

import pytest

from routedb.database.health import check_health
from routedb.exceptions import DatabaseError


class TestCheckHealth:
    """Test check_health."""

    @pytest.mark.asyncio
    async def test_healthy(self, fake_client_cls) -> None:
        """A successful round trip reports healthy."""
        client = fake_client_cls("postgresql://db/app")

        result = await check_health(client)

        assert result == {
            "status": "healthy",
            "details": "Database connection successful",
        }
        assert client.calls == [("$raw", "query_raw", {"sql": "SELECT 1"})]

    @pytest.mark.asyncio
    async def test_unhealthy_reports_message(self, fake_client_cls) -> None:
        """A failing query reports its message instead of raising."""
        client = fake_client_cls("postgresql://db/app")
        client.query_error = ConnectionRefusedError("connection refused")

        result = await check_health(client)

        assert result == {"status": "unhealthy", "details": "connection refused"}

    @pytest.mark.asyncio
    async def test_unhealthy_without_message(self, fake_client_cls) -> None:
        """An error with no message falls back to a generic detail."""
        client = fake_client_cls("postgresql://db/app")
        client.query_error = RuntimeError()

        result = await check_health(client)

        assert result == {"status": "unhealthy", "details": "Unknown error"}

    @pytest.mark.asyncio
    async def test_structured_error_uses_plain_message(self, fake_client_cls) -> None:
        """RouteDB errors report their message without formatting."""
        client = fake_client_cls("postgresql://db/app")
        client.query_error = DatabaseError(message="pool exhausted", hint="wait")

        result = await check_health(client)

        assert result["details"] == "pool exhausted"

    @pytest.mark.asyncio
    async def test_missing_capability_is_reported(self) -> None:
        """Even a client without query_raw yields a verdict."""
        result = await check_health(object())

        assert result["status"] == "unhealthy"
        assert "query_raw" in result["details"]
