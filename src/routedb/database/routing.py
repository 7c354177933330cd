"""Classification of entity operations into reads and writes."""

from __future__ import annotations

WRITE_METHODS: frozenset[str] = frozenset(
    {
        "create",
        "update",
        "delete",
        "upsert",
        "create_many",
        "update_many",
        "delete_many",
    }
)

READ_METHODS: frozenset[str] = frozenset(
    {
        "find_unique",
        "find_unique_or_raise",
        "find_first",
        "find_first_or_raise",
        "find_many",
        "count",
    }
)

ENTITY_METHODS: frozenset[str] = WRITE_METHODS | READ_METHODS


def is_write_method(name: str) -> bool:
    """Return True if ``name`` is a mutating entity operation."""
    return name in WRITE_METHODS
