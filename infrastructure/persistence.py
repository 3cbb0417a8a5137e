"""
Persistence Backends
====================
Row-store abstraction used by the pattern store, the vector store and the
durable cache tier.

Backends:
- InMemoryBackend: dict tables with optional registered native functions
  (development, tests, single-process deployments)
- SQLBackend: SQLAlchemy Core over DatabaseManager (PostgreSQL)

Both expose the same coroutine API; ``rpc`` raises
BackendFunctionUnavailableError when a native function is not present so
callers can take their client-side fallback path.
"""

import copy
import re
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol

import numpy as np
from loguru import logger
from sqlalchemy import and_, delete, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, ProgrammingError, SQLAlchemyError

from core.exceptions import (
    BackendFunctionUnavailableError,
    DatabaseConnectionError,
    PersistenceError,
)
from infrastructure.database import DatabaseManager
from infrastructure.schema import TABLES

Row = Dict[str, Any]
NativeFunction = Callable[["InMemoryBackend", Dict[str, Any]], Awaitable[List[Row]]]

SIMILARITY_FUNCTION = "search_similar_patterns"
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PersistenceBackend(Protocol):
    """Coroutine row-store contract."""

    async def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        where_in: Optional[Dict[str, Iterable[Any]]] = None,
        gte: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]: ...

    async def insert(self, table: str, row: Row) -> Row: ...

    async def update(self, table: str, row_id: str, values: Row) -> Optional[Row]: ...

    async def upsert(self, table: str, row: Row, conflict_key: str = "id") -> Row: ...

    async def delete(self, table: str, ids: Iterable[str], key: str = "id") -> int: ...

    async def rpc(self, function_name: str, params: Dict[str, Any]) -> List[Row]: ...


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================


async def _native_similarity_search(backend: "InMemoryBackend", params: Dict[str, Any]) -> List[Row]:
    """
    Native similarity function over ``pattern_embeddings``.

    Mirrors a server-side vector search: a single matrix product over all
    candidate rows, ``similarity >= match_threshold``, descending order,
    ``match_count`` cap.
    """
    query = np.asarray(params["query_embedding"], dtype=np.float64)
    threshold = float(params.get("match_threshold", 0.7))
    count = int(params.get("match_count", 10))
    user_id = params.get("filter_user_id")

    rows = [
        r
        for r in backend.tables.get("pattern_embeddings", {}).values()
        if user_id is None or r.get("user_id") == user_id
    ]
    if not rows:
        return []

    matrix = np.asarray([r["embedding"] for r in rows], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, matrix @ query / norms, 0.0)

    order = np.argsort(-scores, kind="stable")
    results: List[Row] = []
    for idx in order:
        score = float(scores[idx])
        if score < threshold:
            break
        row = rows[idx]
        results.append(
            {
                "pattern_id": row["pattern_id"],
                "user_id": row.get("user_id"),
                "similarity": score,
                "metadata": copy.deepcopy(row.get("metadata") or {}),
            }
        )
        if len(results) >= count:
            break
    return results


class InMemoryBackend:
    """
    Dict-backed implementation of PersistenceBackend.

    Native functions are opt-in via ``register_function`` (or
    ``native_similarity=True``); unregistered calls to ``rpc`` raise
    BackendFunctionUnavailableError exactly like a database missing the
    function would.
    """

    def __init__(self, native_similarity: bool = False):
        self.tables: Dict[str, Dict[str, Row]] = {name: {} for name in TABLES}
        self._functions: Dict[str, NativeFunction] = {}
        if native_similarity:
            self.register_function(SIMILARITY_FUNCTION, _native_similarity_search)

    def register_function(self, name: str, fn: NativeFunction) -> None:
        self._functions[name] = fn

    def unregister_function(self, name: str) -> None:
        self._functions.pop(name, None)

    def _table(self, table: str) -> Dict[str, Row]:
        if table not in self.tables:
            self.tables[table] = {}
        return self.tables[table]

    async def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        where_in: Optional[Dict[str, Iterable[Any]]] = None,
        gte: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        rows = list(self._table(table).values())

        for column, value in (where or {}).items():
            rows = [r for r in rows if r.get(column) == value]
        for column, values in (where_in or {}).items():
            allowed = set(values)
            rows = [r for r in rows if r.get(column) in allowed]
        for column, value in (gte or {}).items():
            rows = [r for r in rows if r.get(column) is not None and r[column] >= value]

        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is not None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]

        return copy.deepcopy(rows)

    async def insert(self, table: str, row: Row) -> Row:
        rows = self._table(table)
        if row["id"] in rows:
            raise PersistenceError(f"Duplicate id {row['id']} in {table}")
        rows[row["id"]] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update(self, table: str, row_id: str, values: Row) -> Optional[Row]:
        rows = self._table(table)
        if row_id not in rows:
            return None
        rows[row_id].update(copy.deepcopy(values))
        return copy.deepcopy(rows[row_id])

    async def upsert(self, table: str, row: Row, conflict_key: str = "id") -> Row:
        rows = self._table(table)
        for existing_id, existing in rows.items():
            if existing.get(conflict_key) == row.get(conflict_key):
                merged = {**existing, **copy.deepcopy(row), "id": existing_id}
                rows[existing_id] = merged
                return copy.deepcopy(merged)
        rows[row["id"]] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def delete(self, table: str, ids: Iterable[str], key: str = "id") -> int:
        targets = set(ids)
        rows = self._table(table)
        doomed = [row_id for row_id, r in rows.items() if r.get(key) in targets]
        for row_id in doomed:
            del rows[row_id]
        return len(doomed)

    async def rpc(self, function_name: str, params: Dict[str, Any]) -> List[Row]:
        fn = self._functions.get(function_name)
        if fn is None:
            raise BackendFunctionUnavailableError(function_name)
        return await fn(self, params)


# =============================================================================
# SQL BACKEND
# =============================================================================


class SQLBackend:
    """PersistenceBackend over SQLAlchemy Core tables."""

    def __init__(self, database: DatabaseManager):
        self._db = database

    @staticmethod
    @contextmanager
    def _errors(operation: str, table: str):
        try:
            yield
        except (SQLAlchemyError, DatabaseConnectionError) as e:
            logger.error(f"SQL {operation} on {table} failed: {e}")
            raise PersistenceError(f"{operation} on {table} failed: {e}", cause=e) from e

    @staticmethod
    def _table(name: str):
        try:
            return TABLES[name]
        except KeyError as e:
            raise PersistenceError(f"Unknown table: {name}") from e

    async def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        where_in: Optional[Dict[str, Iterable[Any]]] = None,
        gte: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        tbl = self._table(table)
        clauses = [tbl.c[col] == value for col, value in (where or {}).items()]
        clauses += [tbl.c[col].in_(list(values)) for col, values in (where_in or {}).items()]
        clauses += [tbl.c[col] >= value for col, value in (gte or {}).items()]

        stmt = select(tbl)
        if clauses:
            stmt = stmt.where(and_(*clauses))
        if order_by:
            column = tbl.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._errors("select", table):
            return await self._db.fetch_all(stmt)

    async def insert(self, table: str, row: Row) -> Row:
        tbl = self._table(table)
        with self._errors("insert", table):
            await self._db.execute(tbl.insert().values(**row))
        return dict(row)

    async def update(self, table: str, row_id: str, values: Row) -> Optional[Row]:
        tbl = self._table(table)
        with self._errors("update", table):
            count = await self._db.execute(update(tbl).where(tbl.c.id == row_id).values(**values))
            if not count:
                return None
            return await self._db.fetch_one(select(tbl).where(tbl.c.id == row_id))

    async def upsert(self, table: str, row: Row, conflict_key: str = "id") -> Row:
        tbl = self._table(table)
        stmt = pg_insert(tbl).values(**row)
        updates = {k: stmt.excluded[k] for k in row if k not in ("id", conflict_key)}
        stmt = stmt.on_conflict_do_update(index_elements=[conflict_key], set_=updates)
        with self._errors("upsert", table):
            await self._db.execute(stmt)
        return dict(row)

    async def delete(self, table: str, ids: Iterable[str], key: str = "id") -> int:
        tbl = self._table(table)
        with self._errors("delete", table):
            return await self._db.execute(delete(tbl).where(tbl.c[key].in_(list(ids))))

    async def rpc(self, function_name: str, params: Dict[str, Any]) -> List[Row]:
        """Call a set-returning SQL function with named parameters."""
        if not _IDENTIFIER.match(function_name) or not all(_IDENTIFIER.match(k) for k in params):
            raise PersistenceError(f"Invalid function call: {function_name}")

        arguments = ", ".join(f"{name} => :{name}" for name in params)
        statement = text(f"SELECT * FROM {function_name}({arguments})")
        try:
            async with self._db.session() as session:
                result = await session.execute(statement, params)
                return [dict(row) for row in result.mappings().all()]
        except ProgrammingError as e:
            logger.debug(f"Native function {function_name} unavailable: {e}")
            raise BackendFunctionUnavailableError(function_name, cause=e) from e
        except DBAPIError as e:
            raise PersistenceError(f"Function {function_name} failed: {e}", cause=e) from e


__all__ = [
    "PersistenceBackend",
    "InMemoryBackend",
    "SQLBackend",
    "SIMILARITY_FUNCTION",
]
