from __future__ import annotations

from flask import Blueprint

from app.errors import api_response
from app.services import notifications
from config.settings import get_settings
from models.sql_shim import query

from . import int_field, json_body, role_required

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

_COUNTS = {
    "total_users": "SELECT COUNT(*) FROM users",
    "premium_users": "SELECT COUNT(*) FROM users WHERE is_premium = true",
    "documents": "SELECT COUNT(*) FROM documents",
    "videos": "SELECT COUNT(*) FROM videos",
    "forum_posts": "SELECT COUNT(*) FROM forum_posts",
    "open_questions": "SELECT COUNT(*) FROM forum_posts WHERE is_solved = false",
}


@bp.get("/stats")
@role_required("ADMIN")
def stats():
    return api_response({name: query(sql).rows[0]["count"] for name, sql in _COUNTS.items()})


@bp.post("/maintenance/cleanup")
@role_required("ADMIN")
def cleanup():
    keep = int_field(json_body(), "keep", get_settings().NOTIFICATION_RETENTION, minimum=0)
    removed = notifications.cleanup_read_notifications(keep)
    return api_response({"removed": removed}, message=f"Removed {removed} read notifications")
