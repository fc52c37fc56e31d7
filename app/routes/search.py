from __future__ import annotations

from typing import Any, Optional

from flask import Blueprint, request
from flask_login import current_user

from app.errors import ValidationError, api_response
from models.sql_shim import query

from . import int_arg, int_field, json_body

bp = Blueprint("search", __name__, url_prefix="/api/search")

SEARCH_TYPES = ("all", "documents", "videos", "forum")
CONTENT_TYPES = ("documents", "videos", "forum")
ADVANCED_SORTS = ("relevance", "newest", "oldest", "title")
MIN_TERM_LENGTH = 2
MAX_RESULTS = 50
MAX_ADVANCED_RESULTS = 100
MAX_SUGGESTIONS = 20

_TABLES = {"documents": "documents", "videos": "videos", "forum": "forum_posts"}
_ITEM_TYPES = {"documents": "document", "videos": "video", "forum": "post"}

_SEARCHES = {
    "documents": (
        "SELECT id, title, description, subject, grade, is_premium, preview_image, author, created_at "
        "FROM documents "
        "WHERE (title ILIKE $1 OR description ILIKE $1 OR subject ILIKE $1 OR author ILIKE $1)"
    ),
    "videos": (
        "SELECT id, title, description, subject, grade, is_premium, thumbnail, instructor, created_at "
        "FROM videos "
        "WHERE (title ILIKE $1 OR description ILIKE $1 OR subject ILIKE $1 OR instructor ILIKE $1)"
    ),
    "forum": (
        "SELECT id, title, content, subject, grade, votes, is_solved, created_at "
        "FROM forum_posts "
        "WHERE (title ILIKE $1 OR content ILIKE $1)"
    ),
}

# Advanced results carry the author's name and a comment count.
_ADVANCED_FORUM = (
    "SELECT forum_posts.*, users.name AS author, users.role AS author_role "
    "FROM forum_posts LEFT JOIN users ON forum_posts.author_id = users.id "
    "WHERE (forum_posts.title ILIKE $1 OR forum_posts.content ILIKE $1)"
)


def _sees_premium() -> bool:
    return current_user.is_authenticated and (current_user.is_premium or current_user.is_admin)


def _search(
    kind: str,
    term: str,
    limit: int,
    *,
    offset: int = 0,
    subjects: Optional[list[str]] = None,
    grades: Optional[list[int]] = None,
    base: Optional[str] = None,
) -> list[dict]:
    table = _TABLES[kind]
    sql = base or _SEARCHES[kind]
    params: list[Any] = [f"%{term}%"]
    if kind != "forum" and not _sees_premium():
        sql += f" AND {table}.is_premium = false"
    for column, values in (("subject", subjects), ("grade", grades)):
        if values:
            placeholders = ", ".join(f"${len(params) + position}" for position in range(1, len(values) + 1))
            sql += f" AND {table}.{column} IN ({placeholders})"
            params.extend(values)
    sql += f" ORDER BY {table}.created_at DESC LIMIT ${len(params) + 1}"
    params.append(limit)
    if offset:
        sql += f" OFFSET ${len(params) + 1}"
        params.append(offset)
    return query(sql, params).rows


@bp.get("")
def search():
    term = (request.args.get("q") or "").strip()
    if len(term) < MIN_TERM_LENGTH:
        raise ValidationError("Search term must be at least 2 characters long.", {"q": "too short"})
    kind = request.args.get("type") or "all"
    if kind not in SEARCH_TYPES:
        raise ValidationError("Type must be all, documents, videos or forum.", {"type": "invalid"})
    limit = min(int_arg("limit", 10, minimum=1), MAX_RESULTS)

    results = {
        name: _search(name, term, limit) if kind in ("all", name) else []
        for name in CONTENT_TYPES
    }
    results["total"] = sum(len(rows) for rows in results.values())
    return api_response(results)


def _advanced_filters(payload: dict) -> tuple[list[str], list[str], list[int], str]:
    types = payload.get("types") or list(CONTENT_TYPES)
    subjects = payload.get("subjects") or []
    grades = payload.get("grades") or []
    sort_by = payload.get("sortBy") or payload.get("sort_by") or "relevance"
    errors: dict[str, str] = {}
    if not isinstance(types, list) or any(kind not in CONTENT_TYPES for kind in types):
        errors["types"] = "Types must be a list of documents, videos or forum."
    if not isinstance(subjects, list) or not all(isinstance(subject, str) for subject in subjects):
        errors["subjects"] = "Subjects must be a list of names."
    if not isinstance(grades, list) or not all(
        isinstance(grade, int) and not isinstance(grade, bool) for grade in grades
    ):
        errors["grades"] = "Grades must be a list of numbers."
    if sort_by not in ADVANCED_SORTS:
        errors["sortBy"] = "Sort must be relevance, newest, oldest or title."
    if errors:
        raise ValidationError("Validation failed.", errors)
    return types, subjects, grades, sort_by


def _sort_results(rows: list[dict], sort_by: str) -> list[dict]:
    if sort_by == "title":
        return sorted(rows, key=lambda row: str(row.get("title") or "").casefold())
    return sorted(rows, key=lambda row: str(row.get("created_at") or ""), reverse=sort_by != "oldest")


@bp.post("/advanced")
def advanced_search():
    payload = json_body()
    term = str(payload.get("query") or payload.get("q") or "").strip()
    if len(term) < MIN_TERM_LENGTH:
        raise ValidationError("Search term must be at least 2 characters long.", {"query": "too short"})
    types, subjects, grades, sort_by = _advanced_filters(payload)
    limit = min(int_field(payload, "limit", 20, minimum=1), MAX_ADVANCED_RESULTS)
    offset = int_field(payload, "offset", 0, minimum=0)

    found: list[dict] = []
    breakdown: dict[str, int] = {}
    for kind in CONTENT_TYPES:
        rows = []
        if kind in types:
            base = _ADVANCED_FORUM if kind == "forum" else None
            rows = _search(kind, term, limit, offset=offset, subjects=subjects, grades=grades, base=base)
        breakdown[kind] = len(rows)
        found.extend({**row, "type": _ITEM_TYPES[kind]} for row in rows)

    found = _sort_results(found, sort_by)
    return api_response(
        {
            "results": found[:limit],
            "breakdown": breakdown,
            "total": len(found),
            "has_more": len(found) > limit,
            "query": term,
            "filters": {"types": types, "subjects": subjects, "grades": grades, "sortBy": sort_by},
        }
    )


@bp.get("/suggest")
def suggest():
    """Title suggestions that start with the typed prefix."""
    prefix = (request.args.get("q") or "").strip()
    limit = min(int_arg("limit", 5, minimum=1), MAX_SUGGESTIONS)
    if not prefix:
        return api_response({"suggestions": [], "count": 0})

    suggestions: list[str] = []
    for table in _TABLES.values():
        rows = query(
            f"SELECT title FROM {table} WHERE title ILIKE $1 ORDER BY title LIMIT $2",
            [f"{prefix}%", limit],
        ).rows
        for row in rows:
            if row["title"] not in suggestions:
                suggestions.append(row["title"])
    suggestions = suggestions[:limit]
    return api_response({"suggestions": suggestions, "count": len(suggestions)})
