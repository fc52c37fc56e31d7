from __future__ import annotations

from typing import Any, Optional

from models.sql_shim import query
from models.store import get_store

POST_SORTS = {
    "newest": ("created_at", True),
    "popular": ("views", True),
    "votes": ("votes", True),
}


def list_posts(
    *,
    subject: Optional[str] = None,
    grade: Optional[int] = None,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    solved: Optional[bool] = None,
    author_id: Optional[str] = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return one page of posts with author fields and comment counts."""
    builder = get_store().client.table("forum_posts").select("*", count="exact")
    if subject:
        builder = builder.eq("subject", subject)
    if grade is not None:
        builder = builder.eq("grade", grade)
    if search:
        builder = builder.ilike_any(("title", "content"), f"%{search}%")
    if tag:
        builder = builder.contains("tags", tag)
    if solved is not None:
        builder = builder.eq("is_solved", solved)
    if author_id:
        builder = builder.eq("author_id", author_id)
    column, desc = POST_SORTS.get(sort, POST_SORTS["newest"])
    response = (
        builder.order(column, desc=desc)
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    ids = [row["id"] for row in response.data]
    if not ids:
        return [], int(response.count or 0)
    placeholders = ", ".join(f"${index}" for index in range(1, len(ids) + 1))
    enriched = query(
        f"""
        SELECT p.*, u.name AS author, COUNT(c.id) AS comment_count
        FROM forum_posts p
        JOIN users u ON p.author_id = u.id
        LEFT JOIN forum_comments c ON c.post_id = p.id
        WHERE p.id IN ({placeholders})
        GROUP BY p.id, u.name
        """,
        ids,
    ).rows
    by_id = {row["id"]: row for row in enriched}
    return [by_id[post_id] for post_id in ids if post_id in by_id], int(response.count or 0)


def fetch_post(post_id: str) -> Optional[dict[str, Any]]:
    result = query(
        """
        SELECT p.*, u.name AS author, u.role AS author_role, u.avatar AS author_avatar
        FROM forum_posts p
        JOIN users u ON p.author_id = u.id
        WHERE p.id = $1
        """,
        [post_id],
    )
    return result.rows[0] if result.rows else None


def fetch_post_row(post_id: str) -> Optional[dict[str, Any]]:
    return get_store().get_by_id("forum_posts", post_id)


def create_post(
    *,
    title: str,
    content: str,
    author_id: str,
    subject: Optional[str],
    grade: Optional[int],
    tags: list[str],
) -> dict[str, Any]:
    result = query(
        """
        INSERT INTO forum_posts (title, content, author_id, subject, grade, tags)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING *
        """,
        [title, content, author_id, subject, grade, tags],
    )
    return result.rows[0]


def update_post(post_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
    return get_store().update("forum_posts", post_id, updates)


def delete_post(post_id: str) -> None:
    client = get_store().client
    with client.transaction():
        comment_ids = [
            row["id"]
            for row in client.table("forum_comments").select("id").eq("post_id", post_id).execute().data
        ]
        if comment_ids:
            client.table("forum_votes").delete().eq("target_type", "comment").in_(
                "target_id", comment_ids
            ).execute()
        client.table("forum_votes").delete().eq("target_type", "post").eq("target_id", post_id).execute()
        client.table("forum_posts").delete().eq("id", post_id).execute()


def list_comments(post_id: str) -> list[dict[str, Any]]:
    return query(
        """
        SELECT c.*, u.name AS author, u.role AS author_role, u.avatar AS author_avatar
        FROM forum_comments c
        JOIN users u ON c.author_id = u.id
        WHERE c.post_id = $1
        ORDER BY c.is_accepted DESC, c.votes DESC, c.created_at ASC
        """,
        [post_id],
    ).rows


def fetch_comment(comment_id: str) -> Optional[dict[str, Any]]:
    return get_store().get_by_id("forum_comments", comment_id)


def create_comment(*, post_id: str, author_id: str, content: str) -> dict[str, Any]:
    result = query(
        """
        INSERT INTO forum_comments (post_id, author_id, content)
        VALUES ($1, $2, $3)
        RETURNING *
        """,
        [post_id, author_id, content],
    )
    return result.rows[0]


def update_comment_content(comment_id: str, content: str) -> Optional[dict[str, Any]]:
    result = query(
        "UPDATE forum_comments SET content = $1, is_edited = true WHERE id = $2 RETURNING *",
        [content, comment_id],
    )
    return result.rows[0] if result.rows else None


def delete_comment(comment_id: str) -> None:
    client = get_store().client
    with client.transaction():
        client.table("forum_votes").delete().eq("target_type", "comment").eq(
            "target_id", comment_id
        ).execute()
        client.table("forum_comments").delete().eq("id", comment_id).execute()


def accept_comment(comment_id: str) -> Optional[dict[str, Any]]:
    result = query("UPDATE forum_comments SET is_accepted = true WHERE id = $1", [comment_id])
    return result.rows[0] if result.rows else None


def user_votes(user_id: str, target_type: str, target_ids: list[str]) -> dict[str, int]:
    if not target_ids:
        return {}
    rows = (
        get_store().client.table("forum_votes")
        .select("target_id, vote_value")
        .eq("user_id", user_id)
        .eq("target_type", target_type)
        .in_("target_id", target_ids)
        .execute()
        .data
    )
    return {row["target_id"]: int(row["vote_value"]) for row in rows}
