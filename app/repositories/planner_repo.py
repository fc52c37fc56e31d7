from __future__ import annotations

import datetime
from typing import Any, Optional

from models.sql_shim import query
from models.store import get_store
from models.table_api import to_iso


def list_events(
    user_id: str,
    *,
    start: Optional[datetime.datetime] = None,
    end: Optional[datetime.datetime] = None,
    subject: Optional[str] = None,
    event_type: Optional[str] = None,
) -> list[dict[str, Any]]:
    builder = get_store().client.table("study_events").select("*").eq("user_id", user_id)
    if start is not None:
        builder = builder.gte("event_date", to_iso(start))
    if end is not None:
        builder = builder.lt("event_date", to_iso(end))
    if subject:
        builder = builder.eq("subject", subject)
    if event_type:
        builder = builder.eq("event_type", event_type)
    return builder.order("event_date").execute().data


def fetch_event(user_id: str, event_id: str) -> Optional[dict[str, Any]]:
    result = query(
        "SELECT * FROM study_events WHERE id = $1 AND user_id = $2",
        [event_id, user_id],
    )
    return result.rows[0] if result.rows else None


def create_event(
    *,
    user_id: str,
    title: str,
    subject: str,
    event_date: datetime.datetime,
    event_type: str,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    result = query(
        """
        INSERT INTO study_events (user_id, title, subject, event_date, event_type, is_completed, notes)
        VALUES ($1, $2, $3, $4, $5, false, $6)
        RETURNING *
        """,
        [user_id, title, subject, event_date, event_type, notes],
    )
    return result.rows[0]


def update_event(event_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
    return get_store().update("study_events", event_id, updates)


def delete_event(user_id: str, event_id: str) -> bool:
    result = query(
        "DELETE FROM study_events WHERE id = $1 AND user_id = $2",
        [event_id, user_id],
    )
    return result.row_count > 0


def list_open_events_between(start: datetime.datetime, end: datetime.datetime) -> list[dict[str, Any]]:
    """Uncompleted events of every user scheduled in [start, end)."""
    return (
        get_store().client.table("study_events")
        .select("*")
        .eq("is_completed", False)
        .gte("event_date", to_iso(start))
        .lt("event_date", to_iso(end))
        .order("event_date")
        .execute()
        .data
    )


def count_completed_between(user_id: str, start: datetime.datetime, end: datetime.datetime) -> int:
    rows = (
        get_store().client.table("study_events")
        .select("id")
        .eq("user_id", user_id)
        .eq("is_completed", True)
        .gte("updated_at", to_iso(start))
        .lt("updated_at", to_iso(end))
        .execute()
        .data
    )
    return len(rows)


def create_practice_session(
    *,
    user_id: str,
    subject: Optional[str],
    duration_minutes: int,
    score: Optional[int],
    xp_awarded: int,
) -> dict[str, Any]:
    return get_store().insert(
        "practice_sessions",
        {
            "user_id": user_id,
            "subject": subject,
            "duration_minutes": duration_minutes,
            "score": score,
            "xp_awarded": xp_awarded,
        },
    )


def list_practice_sessions(user_id: str, *, limit: Optional[int] = None) -> list[dict[str, Any]]:
    return get_store().where("practice_sessions", limit=limit, user_id=user_id)
