from __future__ import annotations

from typing import Any, Optional

from models.sql_shim import query

BOOKMARK_TYPES = ("document", "video")


def list_bookmarks(user_id: str, *, limit: Optional[int] = None) -> list[dict[str, Any]]:
    """Return bookmarks newest first, each with its document or video under ``item``."""
    sql = """
        SELECT b.*, d.title, v.title
        FROM bookmarks b
        LEFT JOIN documents d ON b.item_type = 'document' AND b.item_id = d.id
        LEFT JOIN videos v ON b.item_type = 'video' AND b.item_id = v.id
        WHERE b.user_id = $1
        ORDER BY b.created_at DESC
    """
    params: list[Any] = [user_id]
    if limit is not None:
        sql += " LIMIT $2"
        params.append(limit)
    return query(sql, params).rows


def add_bookmark(user_id: str, item_id: str, item_type: str) -> Optional[dict[str, Any]]:
    """Bookmark an item; returns None when it was already bookmarked."""
    result = query(
        """
        INSERT INTO bookmarks (user_id, item_id, item_type)
        VALUES ($1, $2, $3)
        ON CONFLICT (user_id, item_id, item_type) DO NOTHING
        RETURNING *
        """,
        [user_id, item_id, item_type],
    )
    return result.rows[0] if result.rows else None


def remove_bookmark(user_id: str, item_id: str, item_type: str) -> bool:
    result = query(
        "DELETE FROM bookmarks WHERE user_id = $1 AND item_id = $2 AND item_type = $3",
        [user_id, item_id, item_type],
    )
    return result.row_count > 0


def is_bookmarked(user_id: str, item_id: str, item_type: str) -> bool:
    result = query(
        "SELECT id FROM bookmarks WHERE user_id = $1 AND item_id = $2 AND item_type = $3",
        [user_id, item_id, item_type],
    )
    return bool(result.rows)
