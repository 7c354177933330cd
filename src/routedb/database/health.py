"""Database health probe."""

from __future__ import annotations

from typing import Any, Literal, TypedDict

from routedb.config import get_logger

logger = get_logger(__name__)


class HealthStatus(TypedDict):
    """Result of a health probe."""

    status: Literal["healthy", "unhealthy"]
    details: str


def failure_status(error: BaseException) -> HealthStatus:
    """Log ``error`` and turn it into an ``unhealthy`` status."""
    message = getattr(error, "message", None) or str(error) or "Unknown error"
    logger.warning("Database health check failed", error=message)
    return {"status": "unhealthy", "details": message}


async def check_health(client: Any) -> HealthStatus:
    """Run ``SELECT 1`` against ``client`` and report the outcome.

    Never raises: any failure is reported as an ``unhealthy`` status.

    Args:
        client: Client exposing ``query_raw``

    Returns:
        Health status with a human readable detail string
    """
    try:
        await client.query_raw("SELECT 1")
    except Exception as e:
        return failure_status(e)
    return {"status": "healthy", "details": "Database connection successful"}
