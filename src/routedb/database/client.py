"""Async entity client over SQLAlchemy Core.

Each table registered on the client's ``MetaData`` is exposed as an
attribute returning an ``EntityDelegate`` with CRUD-style operations:

    client = DatabaseClient("postgresql://app@db/shop", metadata)
    rows = await client.product.find_many(where={"active": True}, take=20)
    row = await client.product.create(data={"name": "Lamp"})

Standalone operations run in their own short transaction. Operations issued
through ``transaction()`` share one connection and commit or roll back
together.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import (
    ColumnElement,
    MetaData,
    Select,
    Table,
    and_,
    delete,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from routedb.config import get_logger
from routedb.database.engine import to_async_url
from routedb.exceptions import DatabaseError, RecordNotFoundError

logger = get_logger(__name__)

Row = dict[str, Any]
TransactionCallback = Callable[["DatabaseClient"], Awaitable[Any]]


@dataclass(frozen=True)
class Operation:
    """A prepared entity operation, executed later inside a transaction."""

    entity: str
    method: str
    args: dict[str, Any] = field(default_factory=dict)

    async def run(self, client: DatabaseClient) -> Any:
        """Execute the operation against ``client``."""
        delegate = getattr(client, self.entity)
        return await getattr(delegate, self.method)(**self.args)


class EntityDelegate:
    """CRUD operations for one table."""

    def __init__(self, client: DatabaseClient, table: Table) -> None:
        """Initialize the delegate.

        Args:
            client: Client whose connection the operations run on
            table: Table the operations target
        """
        self._client = client
        self.table = table

    @property
    def name(self) -> str:
        """Entity (table) name."""
        return self.table.name

    def __repr__(self) -> str:
        return f"EntityDelegate({self.name!r})"

    # Statement helpers

    def _column(self, name: str) -> Any:
        try:
            return self.table.c[name]
        except KeyError as e:
            raise DatabaseError(
                message=f"Unknown column '{name}' on entity '{self.name}'",
                details={"columns": list(self.table.c.keys())},
            ) from e

    def _where(self, where: Mapping[str, Any] | None) -> ColumnElement[bool] | None:
        if not where:
            return None
        return and_(*(self._column(key) == value for key, value in where.items()))

    def _query(
        self,
        where: Mapping[str, Any] | None = None,
        columns: Sequence[str] | None = None,
        order_by: Mapping[str, str] | None = None,
    ) -> Select[Any]:
        if columns:
            stmt = select(*(self._column(name) for name in columns))
        else:
            stmt = select(self.table)

        clause = self._where(where)
        if clause is not None:
            stmt = stmt.where(clause)

        for name, direction in (order_by or {}).items():
            column = self._column(name)
            if direction.lower() == "asc":
                stmt = stmt.order_by(column.asc())
            elif direction.lower() == "desc":
                stmt = stmt.order_by(column.desc())
            else:
                raise DatabaseError(
                    message=f"Invalid sort direction '{direction}' for '{name}'",
                    hint="Use 'asc' or 'desc'",
                )
        return stmt

    def _identity(self, row: Mapping[str, Any]) -> Row:
        """Primary key values of ``row``, or the whole row for keyless tables."""
        keys = [column.key for column in self.table.primary_key.columns]
        if not keys:
            return dict(row)
        return {key: row[key] for key in keys}

    def _not_found(self, where: Mapping[str, Any]) -> RecordNotFoundError:
        return RecordNotFoundError(
            message=f"No {self.name} record matches the given filter",
            details={"entity": self.name, "where": dict(where)},
        )

    async def _first(
        self, conn: AsyncConnection, where: Mapping[str, Any] | None
    ) -> Row | None:
        result = await conn.execute(self._query(where).limit(1))
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def _reload(self, conn: AsyncConnection, identity: Row) -> Row:
        return await self._first(conn, identity) or dict(identity)

    async def _insert(self, conn: AsyncConnection, data: Mapping[str, Any]) -> Row:
        result = await conn.execute(insert(self.table).values(**data))
        key_columns = list(self.table.primary_key.columns)
        primary_key = result.inserted_primary_key
        if not key_columns or primary_key is None or None in tuple(primary_key):
            return dict(data)
        identity = {
            column.key: value
            for column, value in zip(key_columns, primary_key, strict=True)
        }
        return await self._reload(conn, identity)

    async def _update_row(
        self, conn: AsyncConnection, existing: Row, data: Mapping[str, Any]
    ) -> Row:
        identity = self._identity(existing)
        await conn.execute(
            update(self.table).where(self._where(identity)).values(**data)
        )
        identity.update({key: data[key] for key in identity if key in data})
        return await self._reload(conn, identity)

    # Reads

    async def find_many(
        self,
        where: Mapping[str, Any] | None = None,
        order_by: Mapping[str, str] | None = None,
        take: int | None = None,
        skip: int | None = None,
        select: Sequence[str] | None = None,
    ) -> list[Row]:
        """Return every row matching ``where``.

        Args:
            where: Column equality filter
            order_by: Column name to ``"asc"``/``"desc"``
            take: Maximum number of rows
            skip: Number of rows to skip
            select: Columns to return (default: all)

        Returns:
            Matching rows as dictionaries
        """
        stmt = self._query(where, select, order_by)
        if take is not None:
            stmt = stmt.limit(take)
        if skip:
            stmt = stmt.offset(skip)

        async with self._client.connection() as conn:
            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings()]

    async def find_first(
        self,
        where: Mapping[str, Any] | None = None,
        order_by: Mapping[str, str] | None = None,
        select: Sequence[str] | None = None,
    ) -> Row | None:
        """Return the first matching row, or None."""
        rows = await self.find_many(
            where=where, order_by=order_by, take=1, select=select
        )
        return rows[0] if rows else None

    async def find_first_or_raise(
        self,
        where: Mapping[str, Any] | None = None,
        order_by: Mapping[str, str] | None = None,
        select: Sequence[str] | None = None,
    ) -> Row:
        """Return the first matching row or raise RecordNotFoundError."""
        row = await self.find_first(where=where, order_by=order_by, select=select)
        if row is None:
            raise self._not_found(where or {})
        return row

    async def find_unique(
        self, where: Mapping[str, Any], select: Sequence[str] | None = None
    ) -> Row | None:
        """Return the row identified by ``where``, or None."""
        return await self.find_first(where=where, select=select)

    async def find_unique_or_raise(
        self, where: Mapping[str, Any], select: Sequence[str] | None = None
    ) -> Row:
        """Return the row identified by ``where`` or raise RecordNotFoundError."""
        row = await self.find_unique(where=where, select=select)
        if row is None:
            raise self._not_found(where)
        return row

    async def count(self, where: Mapping[str, Any] | None = None) -> int:
        """Count rows matching ``where``."""
        stmt = select(func.count()).select_from(self.table)
        clause = self._where(where)
        if clause is not None:
            stmt = stmt.where(clause)

        async with self._client.connection() as conn:
            return int(await conn.scalar(stmt) or 0)

    # Writes

    async def create(self, data: Mapping[str, Any]) -> Row:
        """Insert one row and return it as stored."""
        async with self._client.connection() as conn:
            return await self._insert(conn, data)

    async def create_many(self, data: Sequence[Mapping[str, Any]]) -> int:
        """Insert several rows and return how many were inserted."""
        if not data:
            return 0
        async with self._client.connection() as conn:
            await conn.execute(insert(self.table), [dict(row) for row in data])
        return len(data)

    async def update(self, where: Mapping[str, Any], data: Mapping[str, Any]) -> Row:
        """Update the row identified by ``where`` and return it.

        Raises:
            RecordNotFoundError: If no row matches ``where``
        """
        async with self._client.connection() as conn:
            existing = await self._first(conn, where)
            if existing is None:
                raise self._not_found(where)
            return await self._update_row(conn, existing, data)

    async def update_many(
        self, data: Mapping[str, Any], where: Mapping[str, Any] | None = None
    ) -> int:
        """Update every row matching ``where`` and return the affected count."""
        stmt = update(self.table).values(**data)
        clause = self._where(where)
        if clause is not None:
            stmt = stmt.where(clause)

        async with self._client.connection() as conn:
            result = await conn.execute(stmt)
            return result.rowcount

    async def delete(self, where: Mapping[str, Any]) -> Row:
        """Delete the row identified by ``where`` and return it.

        Raises:
            RecordNotFoundError: If no row matches ``where``
        """
        async with self._client.connection() as conn:
            existing = await self._first(conn, where)
            if existing is None:
                raise self._not_found(where)
            await conn.execute(
                delete(self.table).where(self._where(self._identity(existing)))
            )
            return existing

    async def delete_many(self, where: Mapping[str, Any] | None = None) -> int:
        """Delete every row matching ``where`` and return the affected count."""
        stmt = delete(self.table)
        clause = self._where(where)
        if clause is not None:
            stmt = stmt.where(clause)

        async with self._client.connection() as conn:
            result = await conn.execute(stmt)
            return result.rowcount

    async def upsert(
        self,
        where: Mapping[str, Any],
        create: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> Row:
        """Update the row identified by ``where`` or insert ``create`` if absent."""
        async with self._client.connection() as conn:
            existing = await self._first(conn, where)
            if existing is None:
                return await self._insert(conn, create)
            return await self._update_row(conn, existing, update)


class DatabaseClient:
    """One pooled database connection target with per-entity operations."""

    def __init__(
        self, url: str | URL, metadata: MetaData, **engine_options: Any
    ) -> None:
        """Initialize the client.

        The engine connects lazily; no I/O happens here.

        Args:
            url: Database URL (bare dialects get an async driver)
            metadata: Tables exposed as entities
            **engine_options: Passed to ``create_async_engine``
        """
        self.url = to_async_url(url)
        self.metadata = metadata
        self.engine: AsyncEngine = create_async_engine(self.url, **engine_options)
        self._connection: AsyncConnection | None = None
        self._delegates: dict[str, EntityDelegate] = {}
        self._closed = False

    def __getattr__(self, name: str) -> EntityDelegate:
        if name.startswith("_"):
            raise AttributeError(name)

        delegate = self._delegates.get(name)
        if delegate is None:
            table = self.metadata.tables.get(name)
            if table is None:
                raise AttributeError(
                    f"'{type(self).__name__}' has no entity or attribute '{name}'"
                )
            delegate = EntityDelegate(self, table)
            self._delegates[name] = delegate
        return delegate

    def __repr__(self) -> str:
        return f"DatabaseClient({self.safe_url!r})"

    @property
    def safe_url(self) -> str:
        """Target URL with the password masked."""
        return self.url.render_as_string(hide_password=True)

    @property
    def entities(self) -> tuple[str, ...]:
        """Names of the entities this client exposes."""
        return tuple(self.metadata.tables)

    @property
    def closed(self) -> bool:
        """Whether ``disconnect()`` has completed."""
        return self._closed

    @property
    def in_transaction(self) -> bool:
        """Whether this client is bound to an open transaction."""
        return self._connection is not None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Yield the connection operations should run on.

        A transaction-bound client yields its transaction's connection.
        Otherwise a pooled connection is checked out inside BEGIN/COMMIT.
        """
        if self._connection is not None:
            yield self._connection
            return
        async with self.engine.begin() as conn:
            yield conn

    def _bind(self, connection: AsyncConnection) -> DatabaseClient:
        bound = copy.copy(self)
        bound._connection = connection
        bound._delegates = {}
        return bound

    async def query_raw(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[Row]:
        """Run a raw SQL query and return its rows."""
        async with self.connection() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings()]

    async def execute_raw(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run a raw SQL statement and return the affected row count."""
        async with self.connection() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return result.rowcount

    async def transaction(
        self,
        operations: Sequence[Operation] | TransactionCallback,
        *,
        timeout: float | None = None,
        isolation_level: str | None = None,
    ) -> Any:
        """Run operations atomically on a single connection.

        Args:
            operations: Prepared operations (results returned in order) or an
                async callable receiving a transaction-bound client
            timeout: Seconds before the transaction is cancelled and rolled back
            isolation_level: Optional isolation level for this connection

        Returns:
            List of operation results, or the callable's return value

        Raises:
            DatabaseError: If called on a transaction-bound client
            TimeoutError: If ``timeout`` elapses first
        """
        if self._connection is not None:
            raise DatabaseError(
                message="Nested transactions are not supported",
                hint="Run the operations on the enclosing transaction client",
            )

        async with self.engine.connect() as conn:
            if isolation_level is not None:
                await conn.execution_options(isolation_level=isolation_level)
            async with conn.begin():
                tx = self._bind(conn)
                async with asyncio.timeout(timeout):
                    if callable(operations):
                        return await operations(tx)
                    return [await operation.run(tx) for operation in operations]

    async def connect(self) -> None:
        """Open one connection to verify the target is reachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.debug("Database client connected", url=self.safe_url)

    async def disconnect(self) -> None:
        """Dispose the engine's pool. Safe to call more than once."""
        if self._connection is not None:
            raise DatabaseError(
                message="Cannot disconnect a transaction-bound client",
                hint="Disconnect the client that opened the transaction",
            )
        if self._closed:
            return
        await self.engine.dispose()
        self._closed = True
        logger.debug("Database client disconnected", url=self.safe_url)
