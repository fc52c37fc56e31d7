"""Service layer: gamification, notifications, email, forum, planner and the AI tutor."""

from . import content_filter, email_service, notifications, openai_client, storage
from . import gamification, voting, forum, planner, tutor

__all__ = [
    "content_filter",
    "email_service",
    "forum",
    "gamification",
    "notifications",
    "openai_client",
    "planner",
    "storage",
    "tutor",
    "voting",
]
