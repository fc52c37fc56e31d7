"""Named stored procedures for the SQL backend.

Supabase deployments define functions with the same names and parameters;
``SqlTableClient.rpc`` dispatches here so callers never need to know which
backend is active.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

_PROCEDURES: Dict[str, Callable[..., Any]] = {}

_VOTE_TABLES = {"post": "forum_posts", "comment": "forum_comments"}


def procedure(name: str) -> Callable:
    def register(func: Callable) -> Callable:
        _PROCEDURES[name] = func
        return func

    return register


def run_procedure(client, name: str, params: dict[str, Any]) -> Any:
    func = _PROCEDURES.get(name)
    if func is None:
        raise ValueError(f"Unknown procedure: {name}")
    return func(client, **params)


def _bump(client, table: str, column: str, row_id: str, delta: int) -> list[dict[str, Any]]:
    if delta >= 0:
        sql = f"UPDATE {table} SET {column} = {column} + %s WHERE id = %s"
        params = [delta, row_id]
    else:
        # Counters never go below zero.
        sql = (
            f"UPDATE {table} SET {column} = CASE WHEN {column} + %s > 0 "
            f"THEN {column} + %s ELSE 0 END WHERE id = %s"
        )
        params = [delta, delta, row_id]
    client.run(sql, params)
    return client._fetch_by_ids(table, [row_id])


@procedure("increment_document_downloads")
def increment_document_downloads(client, document_id: str):
    return _bump(client, "documents", "downloads", document_id, 1)


@procedure("increment_video_views")
def increment_video_views(client, video_id: str):
    return _bump(client, "videos", "views", video_id, 1)


@procedure("increment_video_likes")
def increment_video_likes(client, video_id: str):
    return _bump(client, "videos", "likes", video_id, 1)


@procedure("decrement_video_likes")
def decrement_video_likes(client, video_id: str):
    return _bump(client, "videos", "likes", video_id, -1)


@procedure("increment_post_views")
def increment_post_views(client, post_id: str):
    return _bump(client, "forum_posts", "views", post_id, 1)


@procedure("increment_post_votes")
def increment_post_votes(client, post_id: str):
    return _bump(client, "forum_posts", "votes", post_id, 1)


@procedure("decrement_post_votes")
def decrement_post_votes(client, post_id: str):
    return _bump(client, "forum_posts", "votes", post_id, -1)


@procedure("increment_comment_votes")
def increment_comment_votes(client, comment_id: str):
    return _bump(client, "forum_comments", "votes", comment_id, 1)


@procedure("decrement_comment_votes")
def decrement_comment_votes(client, comment_id: str):
    return _bump(client, "forum_comments", "votes", comment_id, -1)


@procedure("refresh_video_likes")
def refresh_video_likes(client, video_id: str):
    """Set ``videos.likes`` to the number of like rows for the video."""
    client.run(
        "UPDATE videos SET likes = "
        "(SELECT COUNT(*) FROM video_likes WHERE video_id = %s) WHERE id = %s",
        [video_id, video_id],
    )
    return client._fetch_by_ids("videos", [video_id])


@procedure("refresh_target_votes")
def refresh_target_votes(client, target_type: str, target_id: str):
    """Set a post or comment's ``votes`` to the clamped sum of its vote rows."""
    table = _VOTE_TABLES.get(target_type)
    if table is None:
        raise ValueError(f"Unknown vote target type: {target_type}")
    client.run(
        f"UPDATE {table} SET votes = ("
        "SELECT CASE WHEN COALESCE(SUM(vote_value), 0) > 0 "
        "THEN COALESCE(SUM(vote_value), 0) ELSE 0 END "
        "FROM forum_votes WHERE target_type = %s AND target_id = %s"
        ") WHERE id = %s",
        [target_type, target_id, target_id],
    )
    return client._fetch_by_ids(table, [target_id])


@procedure("unaccept_comments")
def unaccept_comments(client, post_id: str):
    rows, _ = client.run(
        "SELECT id FROM forum_comments WHERE post_id = %s AND is_accepted = %s",
        [post_id, True],
    )
    ids = [dict(row)["id"] for row in rows]
    if ids:
        client.run(
            "UPDATE forum_comments SET is_accepted = %s WHERE post_id = %s",
            [False, post_id],
        )
    return client._fetch_by_ids("forum_comments", ids)


@procedure("accept_comment")
def accept_comment(client, comment_id: str):
    """Accept one comment, clear any other accepted answer and mark the post solved."""
    with client.transaction():
        rows, _ = client.run("SELECT post_id FROM forum_comments WHERE id = %s", [comment_id])
        if not rows:
            return []
        post_id = dict(rows[0])["post_id"]
        client.run(
            "UPDATE forum_comments SET is_accepted = %s WHERE post_id = %s AND id <> %s",
            [False, post_id, comment_id],
        )
        client.run(
            "UPDATE forum_comments SET is_accepted = %s WHERE id = %s",
            [True, comment_id],
        )
        client.run("UPDATE forum_posts SET is_solved = %s WHERE id = %s", [True, post_id])
    return client._fetch_by_ids("forum_comments", [comment_id])


__all__ = ["procedure", "run_procedure"]
