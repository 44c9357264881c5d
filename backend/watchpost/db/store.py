"""
Event Store Module
==================

Durable store shared by every security component.

Provides:
- EventStore: the abstract async interface the services depend on
- SQLAlchemyEventStore: implementation over an async SQLAlchemy engine

Records are plain dicts keyed by column name. Filters use a suffix
syntax on the column name:

    {"event_type": "login_failure"}          equality
    {"created_at__gte": since}               >=  (also __gt, __lt, __lte)
    {"event_type__in": ["a", "b"]}           IN
    {"status__ne": "resolved"}               !=
    {"locked_until__isnull": True}           IS NULL / IS NOT NULL

All datetimes leaving the store are timezone-aware UTC.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Union

from pydantic_core import to_jsonable_python
from sqlalchemy import JSON, Table, delete, func, insert, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from watchpost.core.exceptions import StoreError
from watchpost.core.logging import get_logger
from watchpost.db.base import Base
from watchpost.db.session import create_session_factory

logger = get_logger(__name__)

Record = Dict[str, Any]
Filters = Mapping[str, Any]
OrderBy = Union[str, Sequence[str], None]

FILTER_OPERATORS = ("gte", "gt", "lte", "lt", "in", "ne", "isnull")


class EventStore(ABC):
    """
    Abstract durable store.

    Every method is a single round trip executed in its own transaction.
    ``update`` and ``delete`` report the number of affected rows so callers
    can use a conditional update as an atomic claim.
    """

    @abstractmethod
    async def insert(self, table: str, record: Record) -> Record:
        """Insert a row and return it with generated columns filled in."""

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return rows matching the filters. Prefix an order column with ``-`` for descending."""

    @abstractmethod
    async def count(self, table: str, filters: Optional[Filters] = None) -> int:
        """Count rows matching the filters."""

    @abstractmethod
    async def update(self, table: str, filters: Filters, patch: Record) -> int:
        """Apply the patch to matching rows and return how many changed."""

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    async def increment(
        self,
        table: str,
        filters: Filters,
        column: str,
        amount: int = 1,
    ) -> Optional[int]:
        """Atomically add ``amount`` to a column and return the new value, or None if no row matched."""

    @abstractmethod
    async def upsert(self, table: str, record: Record, keys: Sequence[str]) -> Record:
        """
        Insert the record, or update the existing row identified by ``keys``.

        A record holding only key columns leaves an existing row untouched.
        """

    @abstractmethod
    async def ping(self) -> None:
        """Issue a trivial read. Raises StoreError when the store is unreachable."""

    async def get(self, table: str, filters: Filters) -> Optional[Record]:
        """Return the first matching row or None."""
        rows = await self.query(table, filters, limit=1)
        return rows[0] if rows else None


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return value


class SQLAlchemyEventStore(EventStore):
    """
    EventStore over SQLAlchemy Core statements on the declarative tables.

    Works with PostgreSQL (asyncpg) and SQLite (aiosqlite).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        # Register models on the metadata
        import watchpost.models  # noqa: F401

        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    # =====================================
    # Internal Helpers
    # =====================================

    @asynccontextmanager
    async def _transaction(self, operation: str, table: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(
                "store_operation_failed",
                operation=operation,
                table=table,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreError(
                f"Store {operation} on {table} failed",
                details={"operation": operation, "table": table},
            ) from e

    def _table(self, name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"Unknown table: {name}", details={"table": name})
        return table

    def _column(self, table: Table, name: str):
        if name not in table.c:
            raise StoreError(
                f"Unknown column {name} on {table.name}",
                details={"table": table.name, "column": name},
            )
        return table.c[name]

    def _values(self, table: Table, record: Mapping[str, Any]) -> Record:
        values: Record = {}
        for key, value in record.items():
            column = self._column(table, key)
            if isinstance(column.type, JSON):
                values[key] = to_jsonable_python(value)
            else:
                values[key] = _as_utc(value)
        return values

    def _where(self, table: Table, filters: Optional[Filters]) -> list:
        clauses = []
        for key, value in (filters or {}).items():
            name, _, operator = key.partition("__")
            if operator and operator not in FILTER_OPERATORS:
                raise StoreError(f"Unsupported filter operator: {operator}", details={"filter": key})
            column = self._column(table, name)
            value = _as_utc(value)

            if not operator:
                clauses.append(column.is_(None) if value is None else column == value)
            elif operator == "gte":
                clauses.append(column >= value)
            elif operator == "gt":
                clauses.append(column > value)
            elif operator == "lte":
                clauses.append(column <= value)
            elif operator == "lt":
                clauses.append(column < value)
            elif operator == "in":
                clauses.append(column.in_(list(value)))
            elif operator == "ne":
                clauses.append(column.is_not(None) if value is None else column != value)
            elif operator == "isnull":
                clauses.append(column.is_(None) if value else column.is_not(None))
        return clauses

    def _order(self, table: Table, order_by: OrderBy) -> list:
        if order_by is None:
            return []
        names = [order_by] if isinstance(order_by, str) else list(order_by)
        ordering = []
        for name in names:
            if name.startswith("-"):
                ordering.append(self._column(table, name[1:]).desc())
            else:
                ordering.append(self._column(table, name).asc())
        return ordering

    @staticmethod
    def _row(row: Any) -> Record:
        return {key: _as_utc(value) for key, value in row._mapping.items()}

    # =====================================
    # EventStore Interface
    # =====================================

    async def insert(self, table: str, record: Record) -> Record:
        target = self._table(table)
        stmt = insert(target).values(**self._values(target, record)).returning(*target.c)
        async with self._transaction("insert", table) as session:
            result = await session.execute(stmt)
            return self._row(result.one())

    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        target = self._table(table)
        stmt = select(target).where(*self._where(target, filters)).order_by(*self._order(target, order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._transaction("query", table) as session:
            result = await session.execute(stmt)
            return [self._row(row) for row in result.all()]

    async def count(self, table: str, filters: Optional[Filters] = None) -> int:
        target = self._table(table)
        stmt = select(func.count()).select_from(target).where(*self._where(target, filters))
        async with self._transaction("count", table) as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def update(self, table: str, filters: Filters, patch: Record) -> int:
        target = self._table(table)
        stmt = update(target).where(*self._where(target, filters)).values(**self._values(target, patch))
        async with self._transaction("update", table) as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def delete(self, table: str, filters: Filters) -> int:
        target = self._table(table)
        stmt = delete(target).where(*self._where(target, filters))
        async with self._transaction("delete", table) as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def increment(
        self,
        table: str,
        filters: Filters,
        column: str,
        amount: int = 1,
    ) -> Optional[int]:
        target = self._table(table)
        counter = self._column(target, column)
        stmt = (
            update(target)
            .where(*self._where(target, filters))
            .values({counter.name: counter + amount})
            .returning(counter)
        )
        async with self._transaction("increment", table) as session:
            result = await session.execute(stmt)
            row = result.first()
            return int(row[0]) if row is not None else None

    async def upsert(self, table: str, record: Record, keys: Sequence[str]) -> Record:
        target = self._table(table)
        values = self._values(target, record)
        changes = {k: v for k, v in values.items() if k not in keys}
        dialect = self.engine.dialect.name

        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = dialect_insert(target).values(**values)
            if changes:
                stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=changes)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=list(keys))
            async with self._transaction("upsert", table) as session:
                await session.execute(stmt)
        else:
            key_filters = {k: values[k] for k in keys}
            async with self._transaction("upsert", table) as session:
                existing = await session.execute(select(target).where(*self._where(target, key_filters)))
                if existing.first() is None:
                    await session.execute(insert(target).values(**values))
                elif changes:
                    await session.execute(
                        update(target).where(*self._where(target, key_filters)).values(**changes)
                    )

        row = await self.get(table, {k: values[k] for k in keys})
        if row is None:
            raise StoreError(f"Upsert on {table} did not produce a row", details={"table": table})
        return row

    async def ping(self) -> None:
        async with self._transaction("ping", "database") as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Release pooled connections."""
        await self.engine.dispose()
