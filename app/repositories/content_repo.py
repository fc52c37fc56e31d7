"""Documents and videos in the content library."""

from __future__ import annotations

import datetime
from typing import Any, Optional

from models.sql_shim import query
from models.store import get_store
from models.table_api import to_iso

DOCUMENT_SORTS = {
    "newest": ("created_at", True),
    "popular": ("downloads", True),
    "title": ("title", False),
}


def _apply_catalog_filters(
    builder,
    *,
    subject: Optional[str],
    grade: Optional[int],
    search: Optional[str],
    search_columns: tuple[str, ...],
    is_premium: Optional[bool],
):
    if subject:
        builder = builder.eq("subject", subject)
    if grade is not None:
        builder = builder.eq("grade", grade)
    if search:
        builder = builder.ilike_any(search_columns, f"%{search}%")
    if is_premium is not None:
        builder = builder.eq("is_premium", is_premium)
    return builder


def list_documents(
    *,
    subject: Optional[str] = None,
    grade: Optional[int] = None,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    is_premium: Optional[bool] = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return one page of documents and the total number of matches."""
    builder = get_store().client.table("documents").select("*", count="exact")
    builder = _apply_catalog_filters(
        builder,
        subject=subject,
        grade=grade,
        search=search,
        search_columns=("title", "description", "author"),
        is_premium=is_premium,
    )
    if tag:
        builder = builder.contains("tags", tag)
    column, desc = DOCUMENT_SORTS.get(sort, DOCUMENT_SORTS["newest"])
    response = builder.order(column, desc=desc).range(offset, offset + limit - 1).execute()
    return response.data, int(response.count or 0)


def fetch_document(document_id: str) -> Optional[dict[str, Any]]:
    return get_store().get_by_id("documents", document_id)


def increment_document_downloads(document_id: str) -> Optional[dict[str, Any]]:
    result = query("UPDATE documents SET downloads = downloads + 1 WHERE id = $1", [document_id])
    return result.rows[0] if result.rows else None


def list_videos(
    *,
    subject: Optional[str] = None,
    grade: Optional[int] = None,
    search: Optional[str] = None,
    is_premium: Optional[bool] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    builder = get_store().client.table("videos").select("*", count="exact")
    builder = _apply_catalog_filters(
        builder,
        subject=subject,
        grade=grade,
        search=search,
        search_columns=("title", "description", "instructor"),
        is_premium=is_premium,
    )
    response = (
        builder.order("views", desc=True)
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    return response.data, int(response.count or 0)


def fetch_video(video_id: str) -> Optional[dict[str, Any]]:
    return get_store().get_by_id("videos", video_id)


def increment_video_views(video_id: str) -> Optional[dict[str, Any]]:
    result = query("UPDATE videos SET views = views + 1 WHERE id = $1", [video_id])
    return result.rows[0] if result.rows else None


def has_liked_video(user_id: str, video_id: str) -> bool:
    return get_store().first("video_likes", user_id=user_id, video_id=video_id) is not None


def fetch_video_completion(user_id: str, video_id: str) -> Optional[dict[str, Any]]:
    return get_store().first("video_completions", user_id=user_id, video_id=video_id)


def count_added_since(since: datetime.datetime) -> int:
    """Documents and videos added to the library after ``since``."""
    store = get_store()
    total = 0
    for table in ("documents", "videos"):
        response = (
            store.client.table(table)
            .select("id", count="exact", head=True)
            .gte("created_at", to_iso(since))
            .execute()
        )
        total += int(response.count or 0)
    return total
