from __future__ import annotations

import datetime

import pytest

from app.errors import ValidationError
from app.repositories import notifications_repo, progress_repo, users_repo
from app.services import gamification


def test_level_math():
    assert gamification.level_for_xp(0) == 1
    assert gamification.level_for_xp(999) == 1
    assert gamification.level_for_xp(1000) == 2
    assert gamification.level_for_xp(4500) == 5
    assert gamification.xp_to_next_level(1250, 2) == 750
    assert gamification.level_progress(1250, 2) == 25


def test_earned_badges_follow_level_and_streak():
    assert gamification.earned_badges(1, 0) == ["b1"]
    assert gamification.earned_badges(5, 7) == ["b1", "b5", "b2", "b4"]


def test_gain_xp_levels_up_and_unlocks_badges(app_context, make_user):
    user = make_user()

    result = gamification.gain_xp(user["id"], 1000, "manual")

    assert result == {
        "xp": 1000,
        "level": 2,
        "leveled_up": True,
        "new_badges": ["b5"],
        "xp_gained": 1000,
    }
    stored = users_repo.fetch_user(user["id"])
    assert stored["xp"] == 1000
    assert stored["level"] == 2
    assert stored["unlocked_badges"] == ["b1", "b5"]

    history = progress_repo.list_xp_history(user["id"])
    assert history[0]["amount"] == 1000
    assert history[0]["description"] == "Gained 1000 XP"

    titles = {row["title"] for row in notifications_repo.list_notifications(user["id"])}
    assert {"Level Up!", "New Badge Unlocked!"} <= titles


@pytest.mark.parametrize("amount", [0, -5, 1001, "lots", None])
def test_gain_xp_rejects_out_of_range_amounts(app_context, make_user, amount):
    user = make_user()

    with pytest.raises(ValidationError):
        gamification.gain_xp(user["id"], amount)

    assert users_repo.fetch_user(user["id"])["xp"] == 0


def test_award_quietly_swallows_failures(app_context):
    assert gamification.award_quietly("missing-user", 5, "ai_tutor", "Used the AI tutor") is None


def test_record_login_streak_progression(app_context, make_user):
    user = make_user()
    monday = datetime.date(2025, 3, 3)

    assert gamification.record_login(user["id"], monday)["streak"] == 1
    assert gamification.record_login(user["id"], monday)["streak"] == 1
    assert gamification.record_login(user["id"], monday + datetime.timedelta(days=1))["streak"] == 2

    after_gap = gamification.record_login(user["id"], monday + datetime.timedelta(days=4))
    assert after_gap["streak"] == 1
    assert after_gap["last_active_date"] == "2025-03-07"


def test_seven_day_streak_unlocks_streak_badge_and_milestone(app_context, make_user):
    user = make_user(streak=6, last_active_date=datetime.date(2025, 3, 9))

    updated = gamification.record_login(user["id"], datetime.date(2025, 3, 10))

    assert updated["streak"] == 7
    assert "b4" in users_repo.fetch_user(user["id"])["unlocked_badges"]
    titles = [row["title"] for row in notifications_repo.list_notifications(user["id"])]
    assert "Study Streak Milestone!" in titles
    assert "New Badge Unlocked!" in titles


def test_refresh_streaks_resets_lapsed_users(app_context, make_user):
    today = datetime.date(2025, 3, 10)
    lapsed = make_user(streak=4, last_active_date=today - datetime.timedelta(days=2))
    active = make_user(streak=3, last_active_date=today - datetime.timedelta(days=1))
    already_zero = make_user(streak=0, last_active_date=today - datetime.timedelta(days=9))

    assert gamification.refresh_streaks(today) == 1
    assert users_repo.fetch_user(lapsed["id"])["streak"] == 0
    assert users_repo.fetch_user(active["id"])["streak"] == 3
    assert users_repo.fetch_user(already_zero["id"])["streak"] == 0


def test_describe_badges_marks_unlocked():
    catalog = gamification.describe_badges(["b1", "b4"])

    assert len(catalog) == len(gamification.BADGES)
    unlocked = {badge["id"] for badge in catalog if badge["unlocked"]}
    assert unlocked == {"b1", "b4"}
