"""
Table store used by the AI cache.

The cache only needs four primitives against its four logical tables:
select-by-key with ordering, delete-by-key, bulk insert and upsert-by-key.
CacheStore is that contract; SqlCacheStore implements it on the app's async
SQLAlchemy engine. Every failure surfaces as StoreAccessError so callers have
exactly one thing to catch.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from app.models.ai_cache import TABLE_MODELS

Row = Dict[str, Any]


class StoreAccessError(Exception):
    """Raised when the persistent store cannot complete an operation."""

    def __init__(self, operation: str, table: str, cause: Any = None):
        self.operation = operation
        self.table = table
        self.cause = cause
        super().__init__(f"{operation} on {table} failed: {cause}")


class CacheStore(ABC):
    """Minimal table-oriented store contract consumed by AICacheService."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def insert(self, table: str, rows: List[Row]) -> None:
        ...

    @abstractmethod
    async def upsert(self, table: str, row: Row, on_conflict: Sequence[str]) -> None:
        ...

    async def close(self) -> None:
        """Release any held connections. No-op by default."""


_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlCacheStore(CacheStore):
    """CacheStore backed by async SQLAlchemy (PostgreSQL via asyncpg, SQLite via aiosqlite)."""

    def __init__(self, session_factory=None):
        if session_factory is None:
            from app.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    @staticmethod
    def _model(operation: str, table: str):
        model = TABLE_MODELS.get(table)
        if model is None:
            raise StoreAccessError(operation, table, "unknown table")
        return model

    @staticmethod
    def _column(operation: str, model, name: str):
        column = getattr(model, name, None)
        if column is None:
            raise StoreAccessError(operation, model.__tablename__, f"unknown column {name!r}")
        return column

    def _where(self, operation: str, model, filters: Dict[str, Any]):
        return [self._column(operation, model, name) == value for name, value in filters.items()]

    async def select(self, table, filters, order_by=None, descending=False, limit=None):
        model = self._model("select", table)
        stmt = select(model).where(*self._where("select", model, filters))
        if order_by:
            column = self._column("select", model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [record.to_dict() for record in result.scalars().all()]
        except (SQLAlchemyError, OSError) as exc:
            raise StoreAccessError("select", table, exc) from exc

    async def delete(self, table, filters):
        model = self._model("delete", table)
        stmt = delete(model).where(*self._where("delete", model, filters))

        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreAccessError("delete", table, exc) from exc

    async def insert(self, table, rows):
        model = self._model("insert", table)
        if not rows:
            return

        try:
            async with self._session_factory() as session:
                await session.execute(insert(model), rows)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreAccessError("insert", table, exc) from exc

    async def upsert(self, table, row, on_conflict):
        model = self._model("upsert", table)
        update_values = {k: v for k, v in row.items() if k not in on_conflict}
        if hasattr(model, "updated_at"):
            update_values.setdefault("updated_at", datetime.now(timezone.utc))

        try:
            async with self._session_factory() as session:
                dialect_insert = _DIALECT_INSERTS.get(session.get_bind().dialect.name)
                if dialect_insert is not None:
                    # Single-statement upsert: atomic per row
                    stmt = dialect_insert(model).values(**row)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=list(on_conflict),
                        set_=update_values,
                    )
                    await session.execute(stmt)
                else:
                    conflict_filters = {name: row[name] for name in on_conflict}
                    result = await session.execute(
                        select(model).where(*self._where("upsert", model, conflict_filters))
                    )
                    existing = result.scalar_one_or_none()
                    if existing is None:
                        session.add(model(**row))
                    else:
                        for name, value in update_values.items():
                            setattr(existing, name, value)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreAccessError("upsert", table, exc) from exc
