from __future__ import annotations

from typing import Any, Optional

from models.sql_shim import query
from models.store import get_store
from models.table_api import atomic


def fetch_user(user_id: str) -> Optional[dict[str, Any]]:
    """Return the user row for the provided identifier."""
    return get_store().get_by_id("users", user_id)


def fetch_user_by_email(email: str) -> Optional[dict[str, Any]]:
    result = query("SELECT * FROM users WHERE email = $1", [email.strip().lower()])
    return result.rows[0] if result.rows else None


def fetch_user_with_collections(user_id: str) -> Optional[dict[str, Any]]:
    """Return the user together with their bookmarks and notifications."""
    result = query(
        """
        SELECT u.*
        FROM users u
        LEFT JOIN bookmarks b ON b.user_id = u.id
        WHERE u.id = $1
        GROUP BY u.id
        """,
        [user_id],
    )
    return result.rows[0] if result.rows else None


def create_user(
    *,
    name: str,
    email: str,
    password_hash: Optional[str],
    google_id: Optional[str] = None,
    avatar: Optional[str] = None,
) -> dict[str, Any]:
    result = query(
        """
        INSERT INTO users (name, email, password_hash, google_id, avatar)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING *
        """,
        [name.strip(), email.strip().lower(), password_hash, google_id, avatar],
    )
    return result.rows[0]


def update_user(user_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
    return get_store().update("users", user_id, updates)


def update_password(user_id: str, password_hash: str) -> bool:
    result = query(
        "UPDATE users SET password_hash = $1 WHERE id = $2",
        [password_hash, user_id],
    )
    return result.row_count == 1


def delete_user(user_id: str) -> None:
    """Delete the user and recompute the like and vote totals their rows fed."""
    with atomic() as client:
        likes = client.table("video_likes").select("video_id").eq("user_id", user_id).execute().data
        votes = (
            client.table("forum_votes").select("target_type, target_id").eq("user_id", user_id).execute().data
        )
        client.table("users").delete().eq("id", user_id).execute()
        for video_id in sorted({row["video_id"] for row in likes}):
            client.rpc("refresh_video_likes", {"video_id": video_id})
        for target_type, target_id in sorted({(row["target_type"], row["target_id"]) for row in votes}):
            client.rpc("refresh_target_votes", {"target_type": target_type, "target_id": target_id})


def list_leaderboard(limit: int = 10) -> list[dict[str, Any]]:
    result = query(
        """
        SELECT id, name, avatar, xp, level, streak, unlocked_badges
        FROM users
        WHERE role != 'ADMIN'
        ORDER BY xp DESC, level DESC
        LIMIT $1
        """,
        [limit],
    )
    return result.rows


def list_users(*, include_admins: bool = True) -> list[dict[str, Any]]:
    store = get_store()
    if include_admins:
        return store.get("users")
    return store.client.table("users").select("*").neq("role", "ADMIN").execute().data
