"""Generic table helpers shared by the repositories."""

from __future__ import annotations

from typing import Any, Callable, Optional

from . import utcnow
from .schema import TABLES_WITH_UPDATED_AT
from .table_api import BaseTableClient, get_table_client

Predicate = Callable[[dict[str, Any]], bool]


class TableStore:
    """Row-level get/insert/update/delete over a table client."""

    def __init__(self, client: BaseTableClient) -> None:
        self.client = client

    def get(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table``, newest first."""
        return self.client.table(table).select("*").order("created_at", desc=True).execute().data

    def get_by_id(self, table: str, row_id: str) -> Optional[dict[str, Any]]:
        rows = self.client.table(table).select("*").eq("id", row_id).limit(1).execute().data
        return rows[0] if rows else None

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        rows = self.client.table(table).insert(data).execute().data
        return rows[0]

    def update(self, table: str, row_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Update one row by id; returns ``None`` when no row matched."""
        values = dict(updates)
        if table in TABLES_WITH_UPDATED_AT:
            values["updated_at"] = utcnow()
        rows = self.client.table(table).update(values).eq("id", row_id).execute().data
        return rows[0] if rows else None

    def delete(self, table: str, row_id: str) -> bool:
        self.client.table(table).delete().eq("id", row_id).execute()
        return True

    def find(self, table: str, predicate: Predicate) -> list[dict[str, Any]]:
        return [row for row in self.get(table) if predicate(row)]

    def find_one(self, table: str, predicate: Predicate) -> Optional[dict[str, Any]]:
        for row in self.get(table):
            if predicate(row):
                return row
        return None

    def where(
        self,
        table: str,
        *,
        order_by: str = "created_at",
        desc: bool = True,
        limit: Optional[int] = None,
        **equals: Any,
    ) -> list[dict[str, Any]]:
        """Return rows whose columns equal the given values."""
        query = self.client.table(table).select("*")
        for column, value in equals.items():
            query = query.eq(column, value)
        query = query.order(order_by, desc=desc)
        if limit is not None:
            query = query.limit(limit)
        return query.execute().data

    def first(self, table: str, **equals: Any) -> Optional[dict[str, Any]]:
        rows = self.where(table, limit=1, **equals)
        return rows[0] if rows else None

    def count(self, table: str, **equals: Any) -> int:
        query = self.client.table(table).select("id", count="exact", head=True)
        for column, value in equals.items():
            query = query.eq(column, value)
        return int(query.execute().count or 0)


def get_store(admin: bool = True) -> TableStore:
    return TableStore(get_table_client(admin=admin))


__all__ = ["TableStore", "get_store"]
