"""Execution context detection."""

from __future__ import annotations

import sys

# Interpreters without direct database access (Pyodide in the browser, WASI sandboxes)
_CLIENT_SIDE_PLATFORMS = frozenset({"emscripten", "wasi"})


def is_server_context() -> bool:
    """Return True when this process may open database connections."""
    return sys.platform not in _CLIENT_SIDE_PLATFORMS
