from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from app.errors import NotFoundError, ValidationError, api_response
from app.repositories import bookmarks_repo, content_repo
from app.services import voting

from . import bool_arg, current_user_id, int_arg, json_body, page_args, paginated

bp = Blueprint("videos", __name__, url_prefix="/api/videos")


def _flag(payload: dict, name: str) -> bool:
    value = payload.get(name, True)
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false.", {name: "invalid"})
    return value


@bp.get("")
def list_videos():
    page, limit, offset = page_args()
    items, total = content_repo.list_videos(
        subject=request.args.get("subject") or None,
        grade=int_arg("grade"),
        search=(request.args.get("search") or "").strip() or None,
        is_premium=bool_arg("premium"),
        limit=limit,
        offset=offset,
    )
    return api_response(paginated(items, total, page, limit))


@bp.get("/<video_id>")
def get_video(video_id: str):
    video = content_repo.fetch_video(video_id)
    if video is None:
        raise NotFoundError("Video not found.")
    user_id = current_user_id()
    if user_id:
        video["user_has_liked"] = content_repo.has_liked_video(user_id, video_id)
        video["user_has_completed"] = content_repo.fetch_video_completion(user_id, video_id) is not None
        video["is_bookmarked"] = bookmarks_repo.is_bookmarked(user_id, video_id, "video")
    else:
        video["user_has_liked"] = False
        video["user_has_completed"] = False
        video["is_bookmarked"] = False
    return api_response(video)


@bp.post("/<video_id>/view")
@login_required
def record_view(video_id: str):
    updated = content_repo.increment_video_views(video_id)
    if updated is None:
        raise NotFoundError("Video not found.")
    return api_response({"views": updated["views"]}, message="View recorded")


@bp.post("/<video_id>/like")
@login_required
def like_video(video_id: str):
    result = voting.set_video_like(current_user.id, video_id, _flag(json_body(), "liked"))
    message = result.pop("message")
    return api_response(result, message=message)


@bp.post("/<video_id>/complete")
@login_required
def complete_video(video_id: str):
    result = voting.set_video_completion(current_user.id, video_id, _flag(json_body(), "completed"))
    message = result.pop("message")
    return api_response(result, message=message)
