from __future__ import annotations

import logging

from flask import Blueprint
from flask_login import current_user, login_required, logout_user

from app.errors import AuthenticationError, NotFoundError, ValidationError, api_response
from app.repositories import bookmarks_repo, notifications_repo, progress_repo, users_repo
from app.security import hash_password, verify_password
from app.services import gamification, notifications

from . import bool_arg, int_arg, json_body

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="/api/users")

MIN_PASSWORD_LENGTH = 6
PREFERENCE_KEYS = ("emailNotifications", "studyReminders")
MIN_GRADE = 9
MAX_GRADE = 12


def _current_row() -> dict:
    row = users_repo.fetch_user(current_user.id)
    if row is None:
        raise NotFoundError("User not found.")
    return row


def _public(row: dict) -> dict:
    return {key: value for key, value in row.items() if key != "password_hash"}


@bp.get("/leaderboard")
def leaderboard():
    limit = min(int_arg("limit", 10, minimum=1), 100)
    return api_response(users_repo.list_leaderboard(limit))


@bp.get("/profile")
@login_required
def get_profile():
    row = users_repo.fetch_user_with_collections(current_user.id)
    if row is None:
        raise NotFoundError("User not found.")
    xp, level = int(row.get("xp") or 0), int(row.get("level") or 1)
    profile = _public(row)
    profile["level_progress"] = gamification.level_progress(xp, level)
    profile["xp_to_next_level"] = gamification.xp_to_next_level(xp, level)
    return api_response(profile)


def _profile_updates(payload: dict, current: dict) -> dict:
    updates: dict = {}
    errors: dict[str, str] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name or len(name) > 100:
            errors["name"] = "Name must be between 1 and 100 characters."
        updates["name"] = name
    if "avatar" in payload:
        updates["avatar"] = payload.get("avatar") or None
    if "grade" in payload:
        grade = payload.get("grade")
        if grade is not None and (not isinstance(grade, int) or not MIN_GRADE <= grade <= MAX_GRADE):
            errors["grade"] = "Grade must be between 9 and 12."
        updates["grade"] = grade
    if "preferences" in payload:
        incoming = payload.get("preferences")
        if not isinstance(incoming, dict):
            errors["preferences"] = "Preferences must be an object."
        else:
            merged = dict(current.get("preferences") or {})
            merged.update({key: bool(incoming[key]) for key in PREFERENCE_KEYS if key in incoming})
            updates["preferences"] = merged
    if errors:
        raise ValidationError("Validation failed.", errors)
    return updates


@bp.put("/profile")
@login_required
def update_profile():
    current = _current_row()
    updates = _profile_updates(json_body(), current)
    row = users_repo.update_user(current_user.id, updates) if updates else current
    return api_response(_public(row), message="Profile updated successfully")


@bp.put("/password")
@login_required
def change_password():
    payload = json_body()
    current_password = payload.get("current_password") or payload.get("currentPassword") or ""
    new_password = payload.get("new_password") or payload.get("newPassword") or ""
    if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Validation failed.", {"new_password": "Password must be at least 6 characters."})
    row = _current_row()
    if not verify_password(str(current_password), row.get("password_hash")):
        raise AuthenticationError("Current password is incorrect.")
    users_repo.update_password(current_user.id, hash_password(new_password))
    return api_response(message="Password updated successfully")


@bp.post("/gain-xp")
@login_required
def gain_xp():
    payload = json_body()
    result = gamification.gain_xp(
        current_user.id,
        payload.get("amount"),
        str(payload.get("source") or "manual"),
        payload.get("description"),
    )
    message = f"Gained {result['xp_gained']} XP"
    if result["leveled_up"]:
        message += f" and reached level {result['level']}!"
    return api_response(result, message=message)


@bp.get("/badges")
@login_required
def badges():
    row = _current_row()
    unlocked_at = {entry["badge_id"]: entry["created_at"] for entry in progress_repo.list_badge_unlocks(row["id"])}
    catalog = gamification.describe_badges(row.get("unlocked_badges") or [])
    for badge in catalog:
        badge["unlocked_at"] = unlocked_at.get(badge["id"])
    return api_response(catalog)


@bp.get("/xp-history")
@login_required
def xp_history():
    limit = min(int_arg("limit", 20, minimum=1), 100)
    return api_response(progress_repo.list_xp_history(current_user.id, limit=limit))


@bp.post("/upgrade-premium")
@login_required
def upgrade_premium():
    row = _current_row()
    if row.get("is_premium"):
        return api_response(_public(row), message="You already have premium access")
    row = users_repo.update_user(current_user.id, {"is_premium": True}) or row
    notifications.premium_activated(current_user.id)
    return api_response(_public(row), message="Premium access activated")


@bp.delete("/account")
@login_required
def delete_account():
    user_id = current_user.id
    users_repo.delete_user(user_id)
    logout_user()
    logger.info("Deleted account %s", user_id)
    return api_response(message="Account deleted successfully")


@bp.get("/bookmarks")
@login_required
def list_bookmarks():
    return api_response(bookmarks_repo.list_bookmarks(current_user.id))


@bp.post("/bookmarks")
@login_required
def add_bookmark():
    payload = json_body()
    item_id = str(payload.get("item_id") or "").strip()
    item_type = payload.get("item_type")
    if not item_id or item_type not in bookmarks_repo.BOOKMARK_TYPES:
        raise ValidationError(
            "Validation failed.", {"item_type": "Must be 'document' or 'video'.", "item_id": "required"}
        )
    created = bookmarks_repo.add_bookmark(current_user.id, item_id, item_type)
    if created is None:
        return api_response(message="Item already bookmarked")
    return api_response(created, message="Bookmark added", status=201)


@bp.delete("/bookmarks/<item_type>/<item_id>")
@login_required
def remove_bookmark(item_type: str, item_id: str):
    if item_type not in bookmarks_repo.BOOKMARK_TYPES:
        raise ValidationError("Item type must be 'document' or 'video'.")
    if not bookmarks_repo.remove_bookmark(current_user.id, item_id, item_type):
        raise NotFoundError("Bookmark not found.")
    return api_response(message="Bookmark removed")


@bp.get("/notifications")
@login_required
def list_notifications():
    unread_only = bool_arg("unread_only") or False
    limit = min(int_arg("limit", 50, minimum=1), 100)
    items = notifications_repo.list_notifications(current_user.id, unread_only=unread_only, limit=limit)
    return api_response(items, unread_count=notifications_repo.count_unread(current_user.id))


@bp.put("/notifications/read")
@login_required
def mark_notifications_read():
    ids = json_body().get("ids")
    if ids is not None and not isinstance(ids, list):
        raise ValidationError("ids must be a list.", {"ids": "invalid"})
    updated = notifications_repo.mark_read(current_user.id, ids)
    return api_response({"updated": updated}, message="Notifications marked as read")


@bp.delete("/notifications/<notification_id>")
@login_required
def delete_notification(notification_id: str):
    if not notifications_repo.delete_notification(current_user.id, notification_id):
        raise NotFoundError("Notification not found.")
    return api_response(message="Notification deleted")
