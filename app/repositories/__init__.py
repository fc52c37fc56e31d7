"""Database repository helpers for SmartStudy."""

from . import (
    bookmarks_repo,
    content_repo,
    forum_repo,
    notifications_repo,
    planner_repo,
    progress_repo,
    tokens_repo,
    tutor_repo,
    users_repo,
)

__all__ = [
    "bookmarks_repo",
    "content_repo",
    "forum_repo",
    "notifications_repo",
    "planner_repo",
    "progress_repo",
    "tokens_repo",
    "tutor_repo",
    "users_repo",
]
