"""Forum posts, comments and accepted answers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from app.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.repositories import forum_repo, users_repo
from app.services import content_filter, email_service, notifications, voting

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 500
MIN_CONTENT_LENGTH = 10
MAX_COMMENT_LENGTH = 2000


def _clean_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("Tags must be a list.", {"tags": "invalid"})
    return [str(tag).strip() for tag in value if str(tag).strip()]


def _check_post_text(title: Optional[str], content: Optional[str]) -> None:
    errors: dict[str, str] = {}
    if title is not None and not (MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH):
        errors["title"] = "Title must be between 5 and 500 characters."
    if content is not None and len(content) < MIN_CONTENT_LENGTH:
        errors["content"] = "Content must be at least 10 characters."
    if errors:
        raise ValidationError("Validation failed.", errors)
    if content_filter.contains_blocked_language(title, content):
        raise ValidationError("Please remove inappropriate language from your post.")


def _can_moderate(user, owner_id: str) -> bool:
    return user.id == owner_id or user.is_admin


def create_post(user, payload: dict[str, Any]) -> dict[str, Any]:
    title = str(payload.get("title") or "").strip()
    content = str(payload.get("content") or "").strip()
    _check_post_text(title, content)
    grade = payload.get("grade")
    return forum_repo.create_post(
        title=title,
        content=content,
        author_id=user.id,
        subject=payload.get("subject"),
        grade=int(grade) if grade not in (None, "") else None,
        tags=_clean_tags(payload.get("tags")),
    )


def _require_post(post_id: str) -> dict[str, Any]:
    post = forum_repo.fetch_post_row(post_id)
    if post is None:
        raise NotFoundError("Forum post not found.")
    return post


def get_post_detail(post_id: str, viewer_id: Optional[str]) -> dict[str, Any]:
    """Return a post with its comments, counting the viewer's first visit."""
    if forum_repo.fetch_post_row(post_id) is None:
        raise NotFoundError("Forum post not found.")
    voting.record_post_view(viewer_id, post_id)
    post = forum_repo.fetch_post(post_id)
    if post is None:
        raise NotFoundError("Forum post not found.")
    comments = forum_repo.list_comments(post_id)
    if viewer_id:
        comment_votes = forum_repo.user_votes(viewer_id, "comment", [c["id"] for c in comments])
        post["user_vote"] = forum_repo.user_votes(viewer_id, "post", [post_id]).get(post_id)
    else:
        comment_votes = {}
        post["user_vote"] = None
    for comment in comments:
        comment["user_vote"] = comment_votes.get(comment["id"])
    post["comments"] = comments
    post["comment_count"] = len(comments)
    return post


def update_post(user, post_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    post = _require_post(post_id)
    if not _can_moderate(user, post["author_id"]):
        raise PermissionDeniedError("You can only edit your own posts.")
    updates: dict[str, Any] = {}
    if "title" in payload:
        updates["title"] = str(payload.get("title") or "").strip()
    if "content" in payload:
        updates["content"] = str(payload.get("content") or "").strip()
    if "tags" in payload:
        updates["tags"] = _clean_tags(payload.get("tags"))
    if "subject" in payload:
        updates["subject"] = payload.get("subject")
    _check_post_text(updates.get("title"), updates.get("content"))
    if not updates:
        return post
    return forum_repo.update_post(post_id, updates) or post


def set_solved(user, post_id: str, solved: Any) -> dict[str, Any]:
    if not isinstance(solved, bool):
        raise ValidationError("Solved must be boolean.", {"solved": "invalid"})
    post = _require_post(post_id)
    if post["author_id"] != user.id:
        raise PermissionDeniedError("You can only mark your own posts as solved.")
    return forum_repo.update_post(post_id, {"is_solved": solved}) or post


def delete_post(user, post_id: str) -> None:
    post = _require_post(post_id)
    if not _can_moderate(user, post["author_id"]):
        raise PermissionDeniedError("You can only delete your own posts.")
    forum_repo.delete_post(post_id)
    logger.info("Post %s deleted by %s", post_id, user.id)


def _check_comment_text(content: str) -> None:
    if not content or len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError("Comment content is required (max 2000 characters).", {"content": "invalid"})
    if content_filter.contains_blocked_language(content):
        raise ValidationError("Please remove inappropriate language from your comment.")


def add_comment(user, post_id: str, content: Any) -> dict[str, Any]:
    content = str(content or "").strip()
    _check_comment_text(content)
    post = _require_post(post_id)
    comment = forum_repo.create_comment(post_id=post_id, author_id=user.id, content=content)

    if post["author_id"] != user.id:
        notifications.new_reply(post["author_id"], post["title"], user.name)
        post_author = users_repo.fetch_user(post["author_id"])
        if post_author:
            email_service.send_new_reply(post_author, post["title"], user.name)
    return comment


def _require_comment(comment_id: str) -> dict[str, Any]:
    comment = forum_repo.fetch_comment(comment_id)
    if comment is None:
        raise NotFoundError("Comment not found.")
    return comment


def edit_comment(user, comment_id: str, content: Any) -> dict[str, Any]:
    content = str(content or "").strip()
    _check_comment_text(content)
    comment = _require_comment(comment_id)
    if comment["author_id"] != user.id:
        raise PermissionDeniedError("You can only edit your own comments.")
    return forum_repo.update_comment_content(comment_id, content) or comment


def delete_comment(user, comment_id: str) -> None:
    comment = _require_comment(comment_id)
    if not _can_moderate(user, comment["author_id"]):
        raise PermissionDeniedError("You can only delete your own comments.")
    forum_repo.delete_comment(comment_id)


def accept_answer(user, comment_id: str) -> dict[str, Any]:
    """Mark a comment as the accepted answer; only the post author may do this."""
    comment = _require_comment(comment_id)
    post = _require_post(comment["post_id"])
    if post["author_id"] != user.id:
        raise PermissionDeniedError("Only the post author can accept answers.")

    accepted = forum_repo.accept_comment(comment_id) or comment
    if comment["author_id"] != user.id:
        notifications.answer_accepted(comment["author_id"], post["title"])
        answerer = users_repo.fetch_user(comment["author_id"])
        if answerer:
            email_service.send_answer_accepted(answerer, post["title"])
    return accepted
