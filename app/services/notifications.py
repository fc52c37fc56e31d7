"""In-app notifications and their message templates."""

from __future__ import annotations

import logging
from typing import Any, Optional

from app.repositories import notifications_repo

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("INFO", "WARNING", "SUCCESS", "ERROR")


def notify(user_id: str, title: str, message: str, type_: str = "INFO") -> Optional[dict[str, Any]]:
    """Create a notification; failures are logged and never raised."""
    if type_ not in NOTIFICATION_TYPES:
        type_ = "INFO"
    try:
        return notifications_repo.create_notification(user_id, title, message, type_)
    except Exception:
        logger.exception("Failed to create notification %r for user %s", title, user_id)
        return None


def welcome(user_id: str, name: str):
    return notify(
        user_id,
        "Welcome to SmartStudy!",
        f"Hi {name}, welcome aboard! Explore the library, join the forum and plan your studies.",
        "SUCCESS",
    )


def level_up(user_id: str, level: int):
    return notify(
        user_id,
        "Level Up!",
        f"Congratulations! You've reached level {level}. Keep up the great work!",
        "SUCCESS",
    )


def premium_activated(user_id: str):
    return notify(
        user_id,
        "Welcome to Premium!",
        "Your premium access is active. Enjoy all premium documents and videos.",
        "SUCCESS",
    )


def study_goal_completed(user_id: str, title: str, xp: int):
    return notify(
        user_id,
        "Study Goal Completed!",
        f"Great job completing \"{title}\"! You earned {xp} XP.",
        "SUCCESS",
    )


def practice_milestone(user_id: str, attempts: int):
    return notify(
        user_id,
        "Practice Milestone!",
        f"You've completed {attempts} practice sessions. Practice makes perfect!",
        "SUCCESS",
    )


def reminder_message(title: str, hours_until: int) -> str:
    window = "1 hour" if hours_until == 1 else "1 day"
    return f"{title} is coming up in {window}. Don't forget to prepare!"


def study_reminder(user_id: str, title: str, hours_until: int):
    return notify(user_id, "Study Reminder", reminder_message(title, hours_until), "INFO")


def new_reply(user_id: str, post_title: str, replier_name: str):
    return notify(
        user_id,
        "New Reply to Your Post",
        f"{replier_name} replied to your post \"{post_title}\".",
        "INFO",
    )


def answer_accepted(user_id: str, post_title: str):
    return notify(
        user_id,
        "Answer Accepted!",
        f"Your answer on \"{post_title}\" was accepted as the solution.",
        "SUCCESS",
    )


def badge_unlocked(user_id: str, badge_name: str):
    return notify(
        user_id,
        "New Badge Unlocked!",
        f"You've unlocked the \"{badge_name}\" badge!",
        "SUCCESS",
    )


def streak_milestone(user_id: str, streak: int):
    return notify(
        user_id,
        "Study Streak Milestone!",
        f"Amazing! You've kept a {streak}-day study streak.",
        "SUCCESS",
    )


def new_resources(user_id: str, count: int):
    return notify(
        user_id,
        "New resources available",
        f"{count} new resource(s) were added to the library this week.",
        "INFO",
    )


def cleanup_read_notifications(keep: int = 100) -> int:
    """Delete read notifications beyond the newest ``keep`` per user."""
    removed = 0
    for user_id in notifications_repo.list_user_ids_with_read_notifications():
        removed += notifications_repo.delete_read_beyond(user_id, keep)
    if removed:
        logger.info("Removed %s old read notification(s)", removed)
    return removed
