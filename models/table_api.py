"""Typed table client used for all SmartStudy persistence.

Two backends implement the same builder interface:

* ``SqlTableClient`` issues parameterized SQL over :func:`models.get_connection`
  (sqlite for development and tests, PostgreSQL in production).
* ``SupabaseTableClient`` forwards the same calls to supabase-py for
  deployments that keep their data in a hosted Supabase project.

Identifiers are validated against :mod:`models.schema`, so no SQL text is ever
assembled from request data.
"""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence

import psycopg
from psycopg.types.json import Jsonb

from config.settings import get_settings

from . import backend, new_id, transaction, utcnow
from .schema import TABLES, TABLES_WITH_UPDATED_AT, column_kind

logger = logging.getLogger(__name__)

_SUPABASE_CLIENTS: dict[str, "SupabaseTableClient"] = {}


class ConstraintViolation(ValueError):
    """Raised when a write violates a unique or foreign key constraint."""


class SupabaseConfigurationError(RuntimeError):
    """Raised when the Supabase backend is selected without credentials."""


@dataclass
class TableResponse:
    data: list[dict[str, Any]]
    count: Optional[int] = None


@dataclass
class _Filter:
    op: str
    column: Any
    value: Any = None


def to_iso(value: Any) -> Optional[str]:
    """Normalize a datetime-like value to an aware UTC ISO-8601 string."""
    parsed = parse_timestamp(value)
    return parsed.isoformat(timespec="microseconds") if parsed else None


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, datetime.date):
        parsed = datetime.datetime.combine(value, datetime.time())
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def to_date(value: Any) -> Optional[datetime.date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


class TableQuery:
    """Chainable query description executed by a table client."""

    def __init__(self, client: "BaseTableClient", table: str) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        self._client = client
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.count: Optional[str] = None
        self.head = False
        self.values: list[dict[str, Any]] = []
        self.on_conflict: tuple[str, ...] = ()
        self.ignore_duplicates = False
        self.filters: list[_Filter] = []
        self.orders: list[tuple[str, bool]] = []
        self.limit_value: Optional[int] = None
        self.offset_value: Optional[int] = None

    def _check(self, column: str) -> str:
        if column not in TABLES[self.table]:
            raise ValueError(f"Unknown column {column!r} for table {self.table}")
        return column

    # Operations

    def select(self, columns: str = "*", *, count: Optional[str] = None, head: bool = False) -> "TableQuery":
        self.operation = "select"
        if columns.strip() != "*":
            for column in columns.split(","):
                self._check(column.strip())
        self.columns = columns
        self.count = count
        self.head = head
        return self

    def insert(self, values: dict[str, Any] | Sequence[dict[str, Any]]) -> "TableQuery":
        self.operation = "insert"
        self.values = self._rows(values)
        return self

    def upsert(
        self,
        values: dict[str, Any] | Sequence[dict[str, Any]],
        *,
        on_conflict: str | Sequence[str],
        ignore_duplicates: bool = False,
    ) -> "TableQuery":
        self.operation = "upsert"
        self.values = self._rows(values)
        keys = on_conflict.split(",") if isinstance(on_conflict, str) else list(on_conflict)
        self.on_conflict = tuple(self._check(key.strip()) for key in keys)
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, values: dict[str, Any]) -> "TableQuery":
        self.operation = "update"
        self.values = self._rows(values)
        return self

    def delete(self) -> "TableQuery":
        self.operation = "delete"
        return self

    def _rows(self, values: dict[str, Any] | Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        rows = [values] if isinstance(values, dict) else list(values)
        for row in rows:
            for column in row:
                self._check(column)
        return [dict(row) for row in rows]

    # Filters

    def _add(self, op: str, column: Any, value: Any = None) -> "TableQuery":
        if isinstance(column, str):
            self._check(column)
        self.filters.append(_Filter(op, column, value))
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._add("eq", column, value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._add("neq", column, value)

    def gt(self, column: str, value: Any) -> "TableQuery":
        return self._add("gt", column, value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._add("gte", column, value)

    def lt(self, column: str, value: Any) -> "TableQuery":
        return self._add("lt", column, value)

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._add("lte", column, value)

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        return self._add("in", column, list(values))

    def is_(self, column: str, value: Optional[bool]) -> "TableQuery":
        return self._add("is", column, value)

    def contains(self, column: str, value: Any) -> "TableQuery":
        return self._add("contains", column, value)

    def not_contains(self, column: str, value: Any) -> "TableQuery":
        return self._add("not_contains", column, value)

    def ilike_any(self, columns: Sequence[str], pattern: str) -> "TableQuery":
        for column in columns:
            self._check(column)
        return self._add("ilike_any", tuple(columns), pattern)

    def match_nothing(self) -> "TableQuery":
        self.filters.append(_Filter("none", None))
        return self

    # Modifiers

    def order(self, column: str, *, desc: bool = False) -> "TableQuery":
        self.orders.append((self._check(column), desc))
        return self

    def limit(self, count: int) -> "TableQuery":
        self.limit_value = max(0, int(count))
        return self

    def offset(self, count: int) -> "TableQuery":
        self.offset_value = max(0, int(count))
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        self.offset_value = max(0, int(start))
        self.limit_value = max(0, int(end) - int(start) + 1)
        return self

    def execute(self) -> TableResponse:
        return self._client._execute(self)


class BaseTableClient:
    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def from_(self, name: str) -> TableQuery:
        return self.table(name)

    def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        raise NotImplementedError

    def transaction(self) -> contextlib.AbstractContextManager:
        return contextlib.nullcontext()

    def _execute(self, query: TableQuery) -> TableResponse:
        raise NotImplementedError


def _prepare_insert_row(table: str, row: dict[str, Any]) -> dict[str, Any]:
    prepared = dict(row)
    prepared.setdefault("id", new_id())
    now = utcnow()
    prepared.setdefault("created_at", now)
    if table in TABLES_WITH_UPDATED_AT:
        prepared.setdefault("updated_at", now)
    for name, column in TABLES[table].items():
        if name not in prepared and column.default is not None:
            prepared[name] = column.default_value()
    return prepared


class SqlTableClient(BaseTableClient):
    """Table client backed by parameterized SQL on sqlite or PostgreSQL."""

    def transaction(self) -> contextlib.AbstractContextManager:
        return transaction()

    def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        from .procedures import run_procedure

        return run_procedure(self, name, params or {})

    # Value codecs

    def encode(self, table: str, column: str, value: Any) -> Any:
        if value is None:
            return None
        kind = column_kind(table, column)
        dialect = backend()
        if kind == "json":
            return Jsonb(value) if dialect == "postgres" else json.dumps(value)
        if kind == "bool":
            return bool(value)
        if kind == "timestamp":
            return parse_timestamp(value) if dialect == "postgres" else to_iso(value)
        if kind == "date":
            parsed = to_date(value)
            return parsed if dialect == "postgres" else parsed.isoformat()
        return value

    def decode_row(self, table: str, row: Any) -> dict[str, Any]:
        data = dict(row)
        columns = TABLES[table]
        for name, value in data.items():
            column = columns.get(name)
            if column is None or value is None:
                continue
            if column.kind == "json" and isinstance(value, str):
                data[name] = json.loads(value)
            elif column.kind == "bool":
                data[name] = bool(value)
            elif column.kind == "timestamp" and isinstance(value, datetime.datetime):
                data[name] = to_iso(value)
            elif column.kind == "date" and isinstance(value, datetime.date):
                data[name] = value.isoformat()
        return data

    # SQL helpers

    def run(self, sql: str, params: Sequence[Any] = ()) -> tuple[list[Any], int]:
        """Execute a statement and return (rows, rowcount); standalone statements commit."""
        with transaction() as conn:
            if backend() == "sqlite":
                sql = sql.replace("%s", "?")
            cur = conn.cursor()
            try:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall() if cur.description else []
                rowcount = cur.rowcount
            except (sqlite3.IntegrityError, psycopg.IntegrityError) as exc:
                raise ConstraintViolation(str(exc)) from exc
            finally:
                cur.close()
        return rows, rowcount

    def _where(self, query: TableQuery) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        table = query.table
        dialect = backend()
        for item in query.filters:
            op, column, value = item.op, item.column, item.value
            if op == "none":
                clauses.append("1 = 0")
            elif op == "eq" and value is None:
                clauses.append(f"{column} IS NULL")
            elif op in {"eq", "neq", "gt", "gte", "lt", "lte"}:
                symbol = {"eq": "=", "neq": "<>", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}[op]
                clauses.append(f"{column} {symbol} %s")
                params.append(self.encode(table, column, value))
            elif op == "in":
                if not value:
                    clauses.append("1 = 0")
                    continue
                clauses.append(f"{column} IN ({', '.join(['%s'] * len(value))})")
                params.extend(self.encode(table, column, entry) for entry in value)
            elif op == "is":
                if value is None:
                    clauses.append(f"{column} IS NULL")
                else:
                    clauses.append(f"{column} = %s")
                    params.append(bool(value))
            elif op in {"contains", "not_contains"}:
                if dialect == "postgres":
                    clause = f"COALESCE({column}, '[]'::jsonb) @> %s"
                    params.append(Jsonb([value]))
                else:
                    clause = (
                        f"EXISTS (SELECT 1 FROM json_each({table}.{column}) "
                        "WHERE json_each.value = %s)"
                    )
                    params.append(value)
                clauses.append(clause if op == "contains" else f"NOT ({clause})")
            elif op == "ilike_any":
                operator = "ILIKE" if dialect == "postgres" else "LIKE"
                parts = [f"{name} {operator} %s" for name in column]
                clauses.append("(" + " OR ".join(parts) + ")")
                params.extend([value] * len(column))
            else:  # pragma: no cover - guarded by the builder
                raise ValueError(f"Unsupported filter: {op}")
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _fetch_by_ids(self, table: str, ids: Sequence[Any]) -> list[dict[str, Any]]:
        if not ids:
            return []
        placeholders = ", ".join(["%s"] * len(ids))
        rows, _ = self.run(f"SELECT * FROM {table} WHERE id IN ({placeholders})", list(ids))
        by_id = {dict(row)["id"]: self.decode_row(table, row) for row in rows}
        return [by_id[key] for key in ids if key in by_id]

    def _matching_ids(self, query: TableQuery) -> list[Any]:
        where, params = self._where(query)
        rows, _ = self.run(f"SELECT id FROM {query.table}{where}", params)
        return [dict(row)["id"] for row in rows]

    def _execute(self, query: TableQuery) -> TableResponse:
        handler = getattr(self, f"_execute_{query.operation}")
        return handler(query)

    def _execute_select(self, query: TableQuery) -> TableResponse:
        table = query.table
        where, params = self._where(query)
        count: Optional[int] = None
        if query.count:
            rows, _ = self.run(f"SELECT COUNT(*) AS total FROM {table}{where}", params)
            count = int(dict(rows[0])["total"]) if rows else 0
        if query.head:
            return TableResponse(data=[], count=count)

        sql = f"SELECT {query.columns} FROM {table}{where}"
        if query.orders:
            sql += " ORDER BY " + ", ".join(
                f"{column} {'DESC' if desc else 'ASC'}" for column, desc in query.orders
            )
        select_params = list(params)
        if query.limit_value is not None:
            sql += " LIMIT %s"
            select_params.append(query.limit_value)
        if query.offset_value:
            if query.limit_value is None:
                sql += " LIMIT -1" if backend() == "sqlite" else " LIMIT ALL"
            sql += " OFFSET %s"
            select_params.append(query.offset_value)
        rows, _ = self.run(sql, select_params)
        return TableResponse(data=[self.decode_row(table, row) for row in rows], count=count)

    def _insert_sql(self, table: str, row: dict[str, Any]) -> tuple[str, list[Any]]:
        columns = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        return sql, [self.encode(table, column, row[column]) for column in columns]

    def _execute_insert(self, query: TableQuery) -> TableResponse:
        ids: list[Any] = []
        with self.transaction():
            for raw in query.values:
                row = _prepare_insert_row(query.table, raw)
                sql, params = self._insert_sql(query.table, row)
                self.run(sql, params)
                ids.append(row["id"])
        return TableResponse(data=self._fetch_by_ids(query.table, ids), count=len(ids))

    def _execute_upsert(self, query: TableQuery) -> TableResponse:
        table = query.table
        affected: list[dict[str, Any]] = []
        with self.transaction():
            for raw in query.values:
                row = _prepare_insert_row(table, raw)
                sql, params = self._insert_sql(table, row)
                updatable = [
                    column
                    for column in raw
                    if column not in query.on_conflict and column not in {"id", "created_at"}
                ]
                sql += f" ON CONFLICT ({', '.join(query.on_conflict)})"
                if query.ignore_duplicates or not updatable:
                    sql += " DO NOTHING"
                else:
                    sql += " DO UPDATE SET " + ", ".join(
                        f"{column} = excluded.{column}" for column in updatable
                    )
                _, rowcount = self.run(sql, params)
                if rowcount == 0:
                    continue
                lookup = TableQuery(self, table)
                for key in query.on_conflict:
                    lookup.eq(key, row[key])
                affected.extend(self._execute_select(lookup).data)
        return TableResponse(data=affected, count=len(affected))

    def _execute_update(self, query: TableQuery) -> TableResponse:
        if not query.filters:
            raise ValueError("Refusing to update without filters.")
        values = query.values[0] if query.values else {}
        if not values:
            raise ValueError("Nothing to update.")
        table = query.table
        with self.transaction():
            ids = self._matching_ids(query)
            if ids:
                assignments = ", ".join(f"{column} = %s" for column in values)
                params = [self.encode(table, column, value) for column, value in values.items()]
                placeholders = ", ".join(["%s"] * len(ids))
                self.run(
                    f"UPDATE {table} SET {assignments} WHERE id IN ({placeholders})",
                    params + ids,
                )
        return TableResponse(data=self._fetch_by_ids(table, ids), count=len(ids))

    def _execute_delete(self, query: TableQuery) -> TableResponse:
        if not query.filters:
            raise ValueError("Refusing to delete without filters.")
        table = query.table
        with self.transaction():
            ids = self._matching_ids(query)
            removed = self._fetch_by_ids(table, ids)
            if ids:
                placeholders = ", ".join(["%s"] * len(ids))
                self.run(f"DELETE FROM {table} WHERE id IN ({placeholders})", ids)
        return TableResponse(data=removed, count=len(removed))


def _json_ready(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return value


class SupabaseTableClient(BaseTableClient):
    """Table client that forwards queries to a Supabase project.

    PostgREST has no multi-request transactions, so ``transaction()`` is a
    no-op here; atomic multi-row changes live in the project's SQL functions.
    """

    def __init__(self, client) -> None:
        self._client = client

    def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self._client.rpc(name, params or {}).execute().data

    def _execute(self, query: TableQuery) -> TableResponse:
        builder = self._client.table(query.table)
        op = query.operation
        rows = [{key: _json_ready(value) for key, value in row.items()} for row in query.values]
        if op == "select":
            builder = builder.select(query.columns, count=query.count)
        elif op == "insert":
            builder = builder.insert([_prepare_insert_row(query.table, row) for row in rows])
        elif op == "upsert":
            builder = builder.upsert(
                [_prepare_insert_row(query.table, row) for row in rows],
                on_conflict=",".join(query.on_conflict),
                ignore_duplicates=query.ignore_duplicates,
            )
        elif op == "update":
            builder = builder.update(rows[0])
        elif op == "delete":
            builder = builder.delete()

        for item in query.filters:
            builder = self._apply_filter(builder, item)
        if op == "select":
            for column, desc in query.orders:
                builder = builder.order(column, desc=desc)
            if query.limit_value is not None:
                start = query.offset_value or 0
                builder = builder.range(start, start + query.limit_value - 1)
            elif query.offset_value:
                builder = builder.range(query.offset_value, query.offset_value + 999)

        response = builder.execute()
        data = [] if query.head else list(response.data or [])
        return TableResponse(data=data, count=getattr(response, "count", None))

    @staticmethod
    def _apply_filter(builder, item: _Filter):
        op, column, value = item.op, item.column, _json_ready(item.value)
        if op == "none":
            return builder.in_("id", [])
        if op == "eq" and value is None:
            return builder.is_(column, "null")
        if op in {"eq", "neq", "gt", "gte", "lt", "lte"}:
            return getattr(builder, op)(column, value)
        if op == "in":
            return builder.in_(column, value)
        if op == "is":
            return builder.is_(column, "null" if value is None else str(bool(value)).lower())
        if op == "contains":
            return builder.contains(column, [value])
        if op == "not_contains":
            return builder.not_.contains(column, [value])
        if op == "ilike_any":
            pattern = str(value).replace(",", " ").replace("(", " ").replace(")", " ")
            return builder.or_(",".join(f"{name}.ilike.{pattern}" for name in column))
        raise ValueError(f"Unsupported filter: {op}")


def _supabase_client(admin: bool) -> SupabaseTableClient:
    from supabase import create_client

    settings = get_settings()
    key = settings.SUPABASE_SERVICE_ROLE_KEY if admin else settings.SUPABASE_ANON_KEY
    if not settings.SUPABASE_URL or not key:
        raise SupabaseConfigurationError("SUPABASE_URL and a Supabase key must be configured.")
    cache_key = "admin" if admin else "anon"
    if cache_key not in _SUPABASE_CLIENTS:
        _SUPABASE_CLIENTS[cache_key] = SupabaseTableClient(create_client(settings.SUPABASE_URL, key))
    return _SUPABASE_CLIENTS[cache_key]


def get_table_client(admin: bool = False) -> BaseTableClient:
    """Return the table client for the configured ``DATA_BACKEND``."""
    settings = get_settings()
    if settings.DATA_BACKEND == "supabase":
        return _supabase_client(admin)
    return SqlTableClient()


@contextlib.contextmanager
def atomic(client: Optional[BaseTableClient] = None) -> Iterator[BaseTableClient]:
    """Yield a client whose writes inside the block commit together."""
    client = client or get_table_client(admin=True)
    with client.transaction():
        yield client


__all__ = [
    "BaseTableClient",
    "ConstraintViolation",
    "SqlTableClient",
    "SupabaseConfigurationError",
    "SupabaseTableClient",
    "TableQuery",
    "TableResponse",
    "atomic",
    "get_table_client",
    "parse_timestamp",
    "to_date",
    "to_iso",
]
