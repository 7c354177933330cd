"""Graceful shutdown of the database clients."""

from __future__ import annotations

import asyncio
import atexit
import signal
import sys
from functools import partial
from types import FrameType
from typing import Any

from routedb.config import get_logger
from routedb.database.lifecycle import ConnectionRegistry, get_registry
from routedb.runtime import is_server_context

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

_installed = False
_pending: set[asyncio.Task[Any]] = set()


async def disconnect_all(registry: ConnectionRegistry | None = None) -> None:
    """Disconnect the main and primary clients.

    Safe to call any number of times; errors are logged and never raised.

    Args:
        registry: Registry owning the clients (defaults to the process registry)
    """
    if not is_server_context():
        return
    try:
        await (registry or get_registry()).shutdown()
    except Exception as e:
        logger.error("Error disconnecting database clients", error=str(e))


async def shutdown_on_signal(
    signame: str, registry: ConnectionRegistry | None = None
) -> None:
    """Disconnect every client, then exit the process with status 0."""
    logger.info(f"Received {signame}, shutting down gracefully...")
    await disconnect_all(registry)
    sys.exit(0)


def _schedule_shutdown(
    loop: asyncio.AbstractEventLoop,
    signame: str,
    registry: ConnectionRegistry | None,
) -> None:
    task = loop.create_task(shutdown_on_signal(signame, registry))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


def _handle_signal(
    signum: int,
    frame: FrameType | None,
    registry: ConnectionRegistry | None = None,
) -> None:
    signame = signal.Signals(signum).name
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(shutdown_on_signal(signame, registry))
        return
    # Runs between bytecodes of the loop's thread; wake the loop to schedule
    loop.call_soon_threadsafe(_schedule_shutdown, loop, signame, registry)


def _disconnect_at_exit(registry: ConnectionRegistry | None = None) -> None:
    try:
        asyncio.run(disconnect_all(registry))
    except RuntimeError as e:
        logger.warning("Could not disconnect database clients at exit", error=str(e))


def install_shutdown_handlers(
    loop: asyncio.AbstractEventLoop | None = None,
    registry: ConnectionRegistry | None = None,
) -> bool:
    """Disconnect the clients on interpreter exit, SIGINT and SIGTERM.

    Signal handlers are attached to ``loop`` (or the running loop) when there
    is one, and installed with ``signal.signal`` otherwise. Installing twice
    is a no-op.

    Args:
        loop: Event loop to attach signal handlers to
        registry: Registry owning the clients (defaults to the process registry)

    Returns:
        True if handlers are installed, False outside a server-side process
    """
    global _installed

    if not is_server_context():
        return False
    if _installed:
        return True

    atexit.register(_disconnect_at_exit, registry)

    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

    for sig in SHUTDOWN_SIGNALS:
        if loop is not None:
            try:
                loop.add_signal_handler(sig, _schedule_shutdown, loop, sig.name, registry)
                continue
            except NotImplementedError:
                # Windows event loops
                pass
        signal.signal(sig, partial(_handle_signal, registry=registry))

    _installed = True
    logger.debug("Shutdown handlers installed")
    return True
