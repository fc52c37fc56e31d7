"""XP, levels, badges and daily study streaks."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.errors import NotFoundError, ValidationError
from app.repositories import progress_repo, users_repo
from app.services import email_service, notifications
from models import utcnow
from models.table_api import atomic, to_date

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 1000
MIN_XP_GAIN = 1
MAX_XP_GAIN = 1000
STREAK_MILESTONES = (7, 14, 30, 50, 100)


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    min_level: int = 0
    min_streak: int = 0

    def is_earned(self, level: int, streak: int) -> bool:
        return level >= self.min_level and streak >= self.min_streak


BADGES: tuple[Badge, ...] = (
    Badge("b1", "First Steps", "Joined SmartStudy and started learning.", min_level=1),
    Badge("b5", "Community Pillar", "Reached level 2.", min_level=2),
    Badge("b2", "Dedicated Student", "Reached level 5.", min_level=5),
    Badge("b3", "Scholar", "Reached level 10.", min_level=10),
    Badge("b6", "Top of the Class", "Reached level 20.", min_level=20),
    Badge("b4", "Streak Master", "Studied seven days in a row.", min_streak=7),
)

BADGES_BY_ID = {badge.id: badge for badge in BADGES}


def level_for_xp(xp: int) -> int:
    return max(int(xp), 0) // XP_PER_LEVEL + 1


def xp_to_next_level(xp: int, level: int) -> int:
    return level * XP_PER_LEVEL - int(xp)


def level_progress(xp: int, level: int) -> int:
    """Percentage of the way through the current level, capped at 100."""
    into_level = int(xp) - (level - 1) * XP_PER_LEVEL
    return min(100, round(into_level / XP_PER_LEVEL * 100))


def earned_badges(level: int, streak: int) -> list[str]:
    return [badge.id for badge in BADGES if badge.is_earned(level, streak)]


def describe_badges(unlocked: list[str]) -> list[dict[str, Any]]:
    """Return the full catalog with an ``unlocked`` flag per badge."""
    unlocked_ids = set(unlocked or [])
    return [
        {
            "id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "unlocked": badge.id in unlocked_ids,
        }
        for badge in BADGES
    ]


def _unlock_badges(user: dict[str, Any], level: int, streak: int) -> list[str]:
    """Record newly earned badges and return their ids."""
    current = list(user.get("unlocked_badges") or ["b1"])
    new_badges: list[str] = []
    for badge_id in earned_badges(level, streak):
        if badge_id in current:
            continue
        current.append(badge_id)
        progress_repo.record_badge_unlock(user["id"], badge_id)
        new_badges.append(badge_id)
    if new_badges:
        users_repo.update_user(user["id"], {"unlocked_badges": current})
    return new_badges


def _announce_badges(user_id: str, badge_ids: list[str]) -> None:
    for badge_id in badge_ids:
        notifications.badge_unlocked(user_id, BADGES_BY_ID[badge_id].name)


def gain_xp(
    user_id: str,
    amount: Any,
    source: str = "manual",
    description: Optional[str] = None,
) -> dict[str, Any]:
    """Award XP, recompute the level and unlock any badges that became available."""
    try:
        amount = int(amount)
    except (TypeError, ValueError) as exc:
        raise ValidationError("XP amount must be a number.") from exc
    if amount < MIN_XP_GAIN or amount > MAX_XP_GAIN:
        raise ValidationError(f"XP amount must be between {MIN_XP_GAIN} and {MAX_XP_GAIN}.")

    with atomic():
        user = users_repo.fetch_user(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        old_level = int(user.get("level") or 1)
        new_xp = int(user.get("xp") or 0) + amount
        new_level = level_for_xp(new_xp)
        users_repo.update_user(user_id, {"xp": new_xp, "level": new_level})
        progress_repo.record_xp(user_id, amount, source, description or f"Gained {amount} XP")
        new_badges = _unlock_badges(user, new_level, int(user.get("streak") or 0))

    leveled_up = new_level > old_level
    if leveled_up:
        notifications.level_up(user_id, new_level)
    _announce_badges(user_id, new_badges)
    logger.info("User %s gained %s XP from %s (level %s)", user_id, amount, source, new_level)
    return {
        "xp": new_xp,
        "level": new_level,
        "leveled_up": leveled_up,
        "new_badges": new_badges,
        "xp_gained": amount,
    }


def award_quietly(user_id: str, amount: int, source: str, description: str) -> Optional[dict[str, Any]]:
    """Grant XP as a side effect of another action; failures are logged."""
    try:
        return gain_xp(user_id, amount, source, description)
    except Exception:
        logger.exception("Failed to award %s XP to user %s", amount, user_id)
        return None


def _celebrate_streak(user: dict[str, Any], streak: int) -> None:
    if streak not in STREAK_MILESTONES:
        return
    notifications.streak_milestone(user["id"], streak)
    email_service.send_streak_milestone(user, streak)


def record_login(user_id: str, today: Optional[datetime.date] = None) -> dict[str, Any]:
    """Advance the daily streak for a sign-in and return the updated user."""
    today = today or utcnow().date()
    user = users_repo.fetch_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")

    last_active = to_date(user.get("last_active_date"))
    if last_active == today:
        return user

    streak = int(user.get("streak") or 0)
    if last_active is not None and (today - last_active).days == 1:
        new_streak = streak + 1
    else:
        new_streak = 1

    updated = users_repo.update_user(user_id, {"streak": new_streak, "last_active_date": today}) or user
    if new_streak > streak:
        _announce_badges(user_id, _unlock_badges(user, int(user.get("level") or 1), new_streak))
        _celebrate_streak(updated, new_streak)
    return updated


def refresh_streaks(today: Optional[datetime.date] = None) -> int:
    """Reset streaks of users who skipped a day. Returns how many were reset."""
    today = today or utcnow().date()
    yesterday = today - datetime.timedelta(days=1)
    reset = 0
    for user in users_repo.list_users():
        last_active = to_date(user.get("last_active_date"))
        if last_active is None or last_active >= yesterday:
            continue
        if int(user.get("streak") or 0) == 0:
            continue
        users_repo.update_user(user["id"], {"streak": 0})
        reset += 1
    if reset:
        logger.info("Reset %s lapsed study streak(s)", reset)
    return reset


__all__ = [
    "BADGES",
    "Badge",
    "award_quietly",
    "describe_badges",
    "earned_badges",
    "gain_xp",
    "level_for_xp",
    "level_progress",
    "record_login",
    "refresh_streaks",
    "xp_to_next_level",
]
