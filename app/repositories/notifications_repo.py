from __future__ import annotations

import datetime
from typing import Any, Iterable, Optional

from models.sql_shim import query
from models.store import get_store
from models.table_api import to_iso


def create_notification(user_id: str, title: str, message: str, type_: str = "INFO") -> dict[str, Any]:
    result = query(
        """
        INSERT INTO notifications (user_id, title, message, type, is_read)
        VALUES ($1, $2, $3, $4, false)
        RETURNING *
        """,
        [user_id, title, message, type_],
    )
    return result.rows[0]


def list_notifications(
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[dict[str, Any]]:
    query_builder = get_store().client.table("notifications").select("*").eq("user_id", user_id)
    if unread_only:
        query_builder = query_builder.eq("is_read", False)
    return (
        query_builder.order("is_read").order("created_at", desc=True).limit(limit).execute().data
    )


def count_unread(user_id: str) -> int:
    return get_store().count("notifications", user_id=user_id, is_read=False)


def mark_read(user_id: str, notification_ids: Optional[Iterable[str]] = None) -> int:
    query_builder = (
        get_store().client.table("notifications").update({"is_read": True}).eq("user_id", user_id)
    )
    if notification_ids is not None:
        query_builder = query_builder.in_("id", list(notification_ids))
    return len(query_builder.execute().data)


def delete_notification(user_id: str, notification_id: str) -> bool:
    rows = (
        get_store().client.table("notifications")
        .delete()
        .eq("id", notification_id)
        .eq("user_id", user_id)
        .execute()
        .data
    )
    return bool(rows)


def exists_since(user_id: str, title: str, message: str, since: datetime.datetime) -> bool:
    """Return True when an identical notification was created after ``since``."""
    rows = (
        get_store().client.table("notifications")
        .select("id")
        .eq("user_id", user_id)
        .eq("title", title)
        .eq("message", message)
        .gte("created_at", to_iso(since))
        .limit(1)
        .execute()
        .data
    )
    return bool(rows)


def delete_read_beyond(user_id: str, keep: int) -> int:
    """Delete read notifications for a user beyond the newest ``keep``."""
    client = get_store().client
    stale = (
        client.table("notifications")
        .select("id")
        .eq("user_id", user_id)
        .eq("is_read", True)
        .order("created_at", desc=True)
        .offset(keep)
        .execute()
        .data
    )
    if not stale:
        return 0
    client.table("notifications").delete().in_("id", [row["id"] for row in stale]).execute()
    return len(stale)


def list_user_ids_with_read_notifications() -> list[str]:
    rows = get_store().client.table("notifications").select("user_id").eq("is_read", True).execute().data
    return sorted({row["user_id"] for row in rows})
