"""Plain-text transactional email through Amazon SES.

Every public helper goes through :func:`send_quietly`, so a mail outage never
fails the request that triggered the email.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from config.settings import get_settings
from app.utils.aws import make_boto_client

logger = logging.getLogger(__name__)

_SES_CLIENT = None


def _get_client():
    global _SES_CLIENT
    if _SES_CLIENT is None:
        _SES_CLIENT = make_boto_client("ses")
    return _SES_CLIENT


def wants_email(user: dict[str, Any]) -> bool:
    preferences = user.get("preferences") or {}
    return bool(user.get("email")) and preferences.get("emailNotifications", True) is not False


def send_email(to_address: str, subject: str, body: str) -> Optional[str]:
    """Send one email and return the SES message id; returns None when disabled."""
    settings = get_settings()
    if not settings.EMAIL_ENABLED:
        logger.debug("Email disabled; skipping %r to %s", subject, to_address)
        return None
    response = _get_client().send_email(
        Source=settings.EMAIL_SENDER,
        Destination={"ToAddresses": [to_address]},
        Message={
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
        },
        ReplyToAddresses=[settings.SUPPORT_EMAIL],
    )
    return response.get("MessageId")


def send_quietly(to_address: str, subject: str, body: str) -> bool:
    try:
        send_email(to_address, subject, body)
        return True
    except Exception:
        logger.exception("Failed to send email %r to %s", subject, to_address)
        return False


def send_to_user(user: dict[str, Any], subject: str, body: str, *, force: bool = False) -> bool:
    """Email a user unless they turned email notifications off."""
    if not force and not wants_email(user):
        return False
    return send_quietly(user["email"], subject, body)


def send_welcome(user: dict[str, Any]) -> bool:
    settings = get_settings()
    body = (
        f"Hi {user.get('name')},\n\n"
        "Welcome to SmartStudy! Your account is ready.\n"
        f"Start learning at {settings.FRONTEND_URL}\n\n"
        "The SmartStudy Team"
    )
    return send_to_user(user, "Welcome to SmartStudy!", body)


def send_password_reset(user: dict[str, Any], token: str) -> bool:
    settings = get_settings()
    link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    body = (
        f"Hi {user.get('name')},\n\n"
        "We received a request to reset your SmartStudy password.\n"
        f"Use this link within one hour: {link}\n\n"
        f"If you did not ask for this, contact {settings.SUPPORT_EMAIL}."
    )
    return send_to_user(user, "Reset your SmartStudy password", body, force=True)


def send_streak_milestone(user: dict[str, Any], streak: int) -> bool:
    body = (
        f"Hi {user.get('name')},\n\n"
        f"You've studied {streak} days in a row. Keep the streak alive!"
    )
    return send_to_user(user, f"{streak}-day study streak!", body)


def send_new_reply(user: dict[str, Any], post_title: str, replier_name: str) -> bool:
    body = f"Hi {user.get('name')},\n\n{replier_name} replied to your post \"{post_title}\"."
    return send_to_user(user, "New reply to your post", body)


def send_answer_accepted(user: dict[str, Any], post_title: str) -> bool:
    body = (
        f"Hi {user.get('name')},\n\n"
        f"Your answer on \"{post_title}\" was accepted as the solution. Nice work!"
    )
    return send_to_user(user, "Your answer was accepted", body)


def send_weekly_digest(user: dict[str, Any], summary: dict[str, Any]) -> bool:
    upcoming = summary.get("upcoming_events") or []
    lines = [
        f"Hi {user.get('name')},",
        "",
        "Here is your SmartStudy week in review:",
        f"- XP earned: {summary.get('xp_gained', 0)}",
        f"- Study goals completed: {summary.get('events_completed', 0)}",
        f"- Current streak: {user.get('streak', 0)} day(s)",
        f"- Level: {user.get('level', 1)}",
    ]
    if upcoming:
        lines.append("")
        lines.append("Coming up:")
        lines.extend(f"- {event['title']} ({event['event_date'][:10]})" for event in upcoming)
    return send_to_user(user, "Your SmartStudy weekly digest", "\n".join(lines))
