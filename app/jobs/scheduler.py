"""Background jobs: study reminders, daily maintenance and the weekly digest.

Run with ``python -m app.jobs.scheduler``. Each job is isolated so a failure is
logged and the loop carries on.
"""

from __future__ import annotations

import datetime
import logging
import math
import time
from typing import Callable, Optional

from dotenv import load_dotenv

from app.repositories import content_repo, notifications_repo, planner_repo, progress_repo, users_repo
from app.services import email_service, gamification, notifications
from config.settings import get_settings
from models import utcnow
from models.table_api import parse_timestamp

logger = logging.getLogger(__name__)

REMINDER_WINDOWS = {1: datetime.timedelta(hours=2), 24: datetime.timedelta(days=2)}
DAILY_AT = (0, 0)
WEEKLY_AT = (0, 9, 0)  # Monday 09:00
DIGEST_UPCOMING_LIMIT = 5

Clock = Callable[[], datetime.datetime]


def send_study_reminders(now: datetime.datetime) -> int:
    """Notify owners of open events starting in one hour or one day."""
    sent = 0
    horizon = now + datetime.timedelta(hours=25)
    for event in planner_repo.list_open_events_between(now, horizon):
        event_at = parse_timestamp(event["event_date"])
        hours_until = math.floor((event_at - now).total_seconds() / 3600)
        window = REMINDER_WINDOWS.get(hours_until)
        if window is None:
            continue
        message = notifications.reminder_message(event["title"], hours_until)
        if notifications_repo.exists_since(event["user_id"], "Study Reminder", message, now - window):
            continue
        notifications.study_reminder(event["user_id"], event["title"], hours_until)
        logger.info("Sent %sh reminder for event %s", hours_until, event["id"])
        sent += 1
    return sent


def run_daily_tasks(today: datetime.date) -> None:
    gamification.refresh_streaks(today)
    notifications.cleanup_read_notifications(get_settings().NOTIFICATION_RETENTION)


def weekly_summary(user_id: str, now: datetime.datetime) -> dict:
    week_ago = now - datetime.timedelta(days=7)
    upcoming = [
        event
        for event in planner_repo.list_events(user_id, start=now, end=now + datetime.timedelta(days=7))
        if not event.get("is_completed")
    ]
    return {
        "xp_gained": progress_repo.sum_xp_since(user_id, week_ago),
        "events_completed": planner_repo.count_completed_between(user_id, week_ago, now),
        "upcoming_events": upcoming[:DIGEST_UPCOMING_LIMIT],
    }


def send_weekly_digests(now: datetime.datetime) -> int:
    """Email each student a summary of their week and announce new resources."""
    new_resources = content_repo.count_added_since(now - datetime.timedelta(days=7))
    emailed = 0
    for user in users_repo.list_users(include_admins=False):
        if new_resources:
            notifications.new_resources(user["id"], new_resources)
        if not email_service.wants_email(user):
            continue
        if email_service.send_weekly_digest(user, weekly_summary(user["id"], now)):
            emailed += 1
    logger.info("Weekly digest sent to %s user(s)", emailed)
    return emailed


class Scheduler:
    """Polling scheduler with an injectable clock."""

    def __init__(self, clock: Optional[Clock] = None, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self._clock = clock or utcnow
        self._sleep = sleep
        self._last_reminder_scan: Optional[datetime.datetime] = None
        self._last_daily: Optional[datetime.date] = None
        self._last_weekly: Optional[tuple[int, int]] = None

    def _run(self, name: str, job: Callable[[], object]) -> bool:
        try:
            job()
            return True
        except Exception:
            logger.exception("Scheduled job %s failed", name)
            return False

    def run_startup_jobs(self) -> list[str]:
        now = self._clock()
        self._last_reminder_scan = now
        self._last_daily = now.date()
        self._run("reminders", lambda: send_study_reminders(now))
        self._run("daily", lambda: run_daily_tasks(now.date()))
        return ["reminders", "daily"]

    def due_jobs(self, now: datetime.datetime) -> list[str]:
        settings = get_settings()
        due: list[str] = []
        if (
            self._last_reminder_scan is None
            or (now - self._last_reminder_scan).total_seconds() >= settings.REMINDER_SCAN_INTERVAL_SECONDS
        ):
            due.append("reminders")
        if (now.hour, now.minute) == DAILY_AT and self._last_daily != now.date():
            due.append("daily")
        iso_year, iso_week, _ = now.isocalendar()
        if (now.weekday(), now.hour, now.minute) == WEEKLY_AT and self._last_weekly != (iso_year, iso_week):
            due.append("weekly")
        return due

    def tick(self) -> list[str]:
        """Run every job that is due now and return their names."""
        now = self._clock()
        due = self.due_jobs(now)
        for name in due:
            if name == "reminders":
                self._last_reminder_scan = now
                self._run(name, lambda: send_study_reminders(now))
            elif name == "daily":
                self._last_daily = now.date()
                self._run(name, lambda: run_daily_tasks(now.date()))
            elif name == "weekly":
                iso_year, iso_week, _ = now.isocalendar()
                self._last_weekly = (iso_year, iso_week)
                self._run(name, lambda: send_weekly_digests(now))
        return due

    def run_forever(self, stop_after: Optional[int] = None) -> None:
        """
        Run the startup jobs, then poll every ``SCHEDULER_POLL_SECONDS``.

        Args:
            stop_after: Optional number of ticks before returning (useful for tests).
        """
        settings = get_settings()
        self.run_startup_jobs()
        ticks = 0
        while stop_after is None or ticks < stop_after:
            self._sleep(settings.SCHEDULER_POLL_SECONDS)
            self.tick()
            ticks += 1


__all__ = [
    "Scheduler",
    "run_daily_tasks",
    "send_study_reminders",
    "send_weekly_digests",
    "weekly_summary",
]


if __name__ == "__main__":
    import signal
    import sys

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    def signal_handler(sig, frame):
        logger.info("Received interrupt signal, shutting down scheduler...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    from models import init_db

    init_db()
    logger.info("Scheduler started")
    try:
        Scheduler().run_forever()
    except Exception as exc:
        logger.exception("Scheduler crashed: %s", exc)
        sys.exit(1)
