from __future__ import annotations

import datetime

from flask import Blueprint, request
from flask_login import current_user, login_required

from app.errors import NotFoundError, api_response
from app.repositories import bookmarks_repo, notifications_repo, planner_repo, progress_repo, users_repo
from app.services import gamification
from models import utcnow

bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

UPCOMING_DAYS = 7
UPCOMING_LIMIT = 5
RECENT_BOOKMARKS = 12
RECENT_XP_ENTRIES = 5


def _requested_day() -> datetime.date:
    """The client's local date when given as YYYY-MM-DD, otherwise today in UTC."""
    raw = request.args.get("date") or ""
    try:
        return datetime.date.fromisoformat(raw)
    except ValueError:
        return utcnow().date()


@bp.get("")
@login_required
def dashboard():
    user = users_repo.fetch_user(current_user.id)
    if user is None:
        raise NotFoundError("User not found.")

    day = _requested_day()
    day_start = datetime.datetime.combine(day, datetime.time(), tzinfo=datetime.timezone.utc)
    day_end = day_start + datetime.timedelta(days=1)
    todays_events = planner_repo.list_events(user["id"], start=day_start, end=day_end)
    completed_today = sum(1 for event in todays_events if event.get("is_completed"))
    upcoming = [
        event
        for event in planner_repo.list_events(
            user["id"], start=day_end, end=day_end + datetime.timedelta(days=UPCOMING_DAYS)
        )
        if not event.get("is_completed")
    ]

    xp, level = int(user.get("xp") or 0), int(user.get("level") or 1)
    return api_response(
        {
            "user": {
                "id": user["id"],
                "name": user["name"],
                "avatar": user.get("avatar"),
                "is_premium": bool(user.get("is_premium")),
                "xp": xp,
                "level": level,
                "streak": int(user.get("streak") or 0),
                "level_progress": gamification.level_progress(xp, level),
                "xp_to_next_level": gamification.xp_to_next_level(xp, level),
                "badges": user.get("unlocked_badges") or [],
            },
            "today": {
                "date": day.isoformat(),
                "events": todays_events,
                "completed": completed_today,
                "total": len(todays_events),
                "progress": round(completed_today / len(todays_events) * 100) if todays_events else 0,
            },
            "upcoming_events": upcoming[:UPCOMING_LIMIT],
            "recent_bookmarks": bookmarks_repo.list_bookmarks(user["id"], limit=RECENT_BOOKMARKS),
            "unread_notifications": notifications_repo.count_unread(user["id"]),
            "recent_xp": progress_repo.list_xp_history(user["id"], limit=RECENT_XP_ENTRIES),
        }
    )
