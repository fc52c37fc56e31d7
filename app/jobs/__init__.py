"""Background jobs for SmartStudy."""

from .scheduler import Scheduler, run_daily_tasks, send_study_reminders, send_weekly_digests

__all__ = [
    "Scheduler",
    "run_daily_tasks",
    "send_study_reminders",
    "send_weekly_digests",
]
