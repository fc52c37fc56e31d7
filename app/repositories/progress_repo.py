from __future__ import annotations

import datetime
from typing import Any, Optional

from models.store import get_store
from models.table_api import to_iso


def record_xp(user_id: str, amount: int, source: str, description: str) -> dict[str, Any]:
    return get_store().insert(
        "xp_history",
        {"user_id": user_id, "amount": amount, "source": source, "description": description},
    )


def list_xp_history(
    user_id: str,
    *,
    limit: int = 20,
    since: Optional[datetime.datetime] = None,
) -> list[dict[str, Any]]:
    query = get_store().client.table("xp_history").select("*").eq("user_id", user_id)
    if since is not None:
        query = query.gte("created_at", to_iso(since))
    return query.order("created_at", desc=True).limit(limit).execute().data


def sum_xp_since(user_id: str, since: datetime.datetime) -> int:
    rows = (
        get_store().client.table("xp_history")
        .select("amount")
        .eq("user_id", user_id)
        .gte("created_at", to_iso(since))
        .execute()
        .data
    )
    return sum(int(row.get("amount") or 0) for row in rows)


def list_badge_unlocks(user_id: str) -> list[dict[str, Any]]:
    return get_store().where("badge_unlocks", desc=False, user_id=user_id)


def record_badge_unlock(user_id: str, badge_id: str) -> bool:
    """Store a badge unlock; returns False when it was already recorded."""
    rows = (
        get_store().client.table("badge_unlocks")
        .upsert(
            {"user_id": user_id, "badge_id": badge_id},
            on_conflict=("user_id", "badge_id"),
            ignore_duplicates=True,
        )
        .execute()
        .data
    )
    return bool(rows)
