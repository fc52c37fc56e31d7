"""Study planner events, completion rewards and practice sessions."""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from typing import Any, Optional

from app.errors import NotFoundError, ValidationError
from app.repositories import planner_repo, users_repo
from app.services import gamification, notifications
from models import utcnow
from models.table_api import atomic, parse_timestamp

logger = logging.getLogger(__name__)

SUBJECTS = ("Mathematics", "English", "History", "Chemistry", "Physics", "Biology")
EVENT_TYPES = ("Exam", "Revision", "Assignment")
COMPLETION_XP = {"Exam": 50, "Revision": 20, "Assignment": 30}
MAX_TITLE_LENGTH = 200
MAX_NOTES_LENGTH = 1000
MAX_PRACTICE_MINUTES = 480
MAX_PRACTICE_XP = 60
PRACTICE_MILESTONE_EVERY = 10

_EDITABLE_FIELDS = ("title", "subject", "event_date", "event_type", "notes", "is_completed")


def parse_event_date(value: Any) -> datetime.datetime:
    try:
        parsed = parse_timestamp(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Valid date required.", {"event_date": "invalid"}) from exc
    if parsed is None:
        raise ValidationError("Valid date required.", {"event_date": "required"})
    return parsed


def _validate_fields(payload: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    errors: dict[str, str] = {}
    clean: dict[str, Any] = {}

    if "title" in payload or not partial:
        title = str(payload.get("title") or "").strip()
        if not title or len(title) > MAX_TITLE_LENGTH:
            errors["title"] = "Title is required (max 200 characters)."
        clean["title"] = title
    if "subject" in payload or not partial:
        if payload.get("subject") not in SUBJECTS:
            errors["subject"] = "Valid subject required."
        clean["subject"] = payload.get("subject")
    if "event_type" in payload or not partial:
        if payload.get("event_type") not in EVENT_TYPES:
            errors["event_type"] = "Valid event type required."
        clean["event_type"] = payload.get("event_type")
    if "event_date" in payload or not partial:
        try:
            clean["event_date"] = parse_event_date(payload.get("event_date"))
        except ValidationError:
            errors["event_date"] = "Valid date required."
    if "notes" in payload:
        notes = payload.get("notes")
        if notes is not None and len(str(notes)) > MAX_NOTES_LENGTH:
            errors["notes"] = "Notes must be at most 1000 characters."
        clean["notes"] = str(notes).strip() if notes is not None else None
    if "is_completed" in payload:
        if not isinstance(payload.get("is_completed"), bool):
            errors["is_completed"] = "Must be true or false."
        clean["is_completed"] = payload.get("is_completed")

    if errors:
        raise ValidationError("Validation failed.", errors)
    return clean


def create_event(user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    fields = _validate_fields(payload, partial=False)
    return planner_repo.create_event(
        user_id=user_id,
        title=fields["title"],
        subject=fields["subject"],
        event_date=fields["event_date"],
        event_type=fields["event_type"],
        notes=fields.get("notes"),
    )


def update_event(user_id: str, event_id: str, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
    """Apply edits to an owned event. Returns the event and XP gained."""
    event = planner_repo.fetch_event(user_id, event_id)
    if event is None:
        raise NotFoundError("Study event not found.")
    updates = _validate_fields({key: payload[key] for key in _EDITABLE_FIELDS if key in payload}, partial=True)
    if not updates:
        return event, 0

    completing = updates.get("is_completed") is True and not event.get("is_completed")
    xp_gain = COMPLETION_XP.get(updates.get("event_type") or event["event_type"], 0) if completing else 0

    with atomic():
        updated = planner_repo.update_event(event_id, updates) or event
        if xp_gain:
            gamification.gain_xp(user_id, xp_gain, "planner", f"Completed {event['title']}")

    if xp_gain:
        notifications.study_goal_completed(user_id, event["title"], xp_gain)
    return updated, xp_gain


def delete_event(user_id: str, event_id: str) -> None:
    if not planner_repo.delete_event(user_id, event_id):
        raise NotFoundError("Study event not found.")


def event_stats(user_id: str, now: Optional[datetime.datetime] = None) -> dict[str, Any]:
    now = now or utcnow()
    events = planner_repo.list_events(user_id)
    open_events = [event for event in events if not event.get("is_completed")]
    upcoming = sum(1 for event in open_events if parse_timestamp(event["event_date"]) >= now)
    by_type = {event_type: 0 for event_type in EVENT_TYPES}
    by_type.update(Counter(event["event_type"] for event in events))
    return {
        "total": len(events),
        "completed": len(events) - len(open_events),
        "upcoming": upcoming,
        "overdue": len(open_events) - upcoming,
        "by_type": by_type,
        "by_subject": dict(Counter(event.get("subject") for event in events if event.get("subject"))),
    }


def record_practice(user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    subject = payload.get("subject")
    if subject not in SUBJECTS:
        raise ValidationError("Valid subject required.", {"subject": "invalid"})
    try:
        duration = int(payload.get("duration_minutes", payload.get("duration")))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Duration must be a number of minutes.", {"duration_minutes": "invalid"}) from exc
    if duration < 1 or duration > MAX_PRACTICE_MINUTES:
        raise ValidationError(
            "Duration must be between 1 and 480 minutes.", {"duration_minutes": "out of range"}
        )
    score = payload.get("score")
    if score is not None:
        try:
            score = int(score)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Score must be a number.", {"score": "invalid"}) from exc

    xp_gain = max(1, min(duration, MAX_PRACTICE_XP))
    with atomic():
        user = users_repo.fetch_user(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        attempts = int(user.get("practice_attempts") or 0) + 1
        users_repo.update_user(user_id, {"practice_attempts": attempts})
        session = planner_repo.create_practice_session(
            user_id=user_id,
            subject=subject,
            duration_minutes=duration,
            score=score,
            xp_awarded=xp_gain,
        )
        result = gamification.gain_xp(user_id, xp_gain, "practice", f"{duration} minute {subject} practice")

    if attempts % PRACTICE_MILESTONE_EVERY == 0:
        notifications.practice_milestone(user_id, attempts)
    logger.info("User %s practised %s for %s minutes", user_id, subject, duration)
    return {
        "session": session,
        "practice_attempts": attempts,
        "xp_gained": xp_gain,
        "xp": result["xp"],
        "level": result["level"],
    }


def practice_stats(user_id: str, *, recent: int = 5) -> dict[str, Any]:
    user = users_repo.fetch_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    sessions = planner_repo.list_practice_sessions(user_id)
    xp = int(user.get("xp") or 0)
    level = int(user.get("level") or 1)
    return {
        "attempts": int(user.get("practice_attempts") or 0),
        "total_minutes": sum(int(session.get("duration_minutes") or 0) for session in sessions),
        "xp": xp,
        "level": level,
        "xp_to_next_level": gamification.xp_to_next_level(xp, level),
        "streak": int(user.get("streak") or 0),
        "recent_sessions": sessions[:recent],
    }
