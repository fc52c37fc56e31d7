from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from app.errors import ValidationError, api_response
from app.repositories import forum_repo
from app.services import forum, voting

from . import bool_arg, current_user_id, int_arg, json_body, page_args, paginated

bp = Blueprint("forum", __name__, url_prefix="/api/forum")


@bp.get("/posts")
def list_posts():
    page, limit, offset = page_args()
    sort = request.args.get("sort", "newest")
    if sort not in forum_repo.POST_SORTS:
        raise ValidationError("Sort must be newest, popular or votes.", {"sort": "invalid"})
    items, total = forum_repo.list_posts(
        subject=request.args.get("subject") or None,
        grade=int_arg("grade"),
        search=(request.args.get("search") or "").strip() or None,
        tag=request.args.get("tag") or None,
        solved=bool_arg("solved"),
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return api_response(paginated(items, total, page, limit))


@bp.get("/posts/<post_id>")
def get_post(post_id: str):
    return api_response(forum.get_post_detail(post_id, current_user_id()))


@bp.post("/posts")
@login_required
def create_post():
    post = forum.create_post(current_user, json_body())
    return api_response(post, message="Forum post created successfully", status=201)


@bp.put("/posts/<post_id>")
@login_required
def update_post(post_id: str):
    post = forum.update_post(current_user, post_id, json_body())
    return api_response(post, message="Forum post updated successfully")


@bp.delete("/posts/<post_id>")
@login_required
def delete_post(post_id: str):
    forum.delete_post(current_user, post_id)
    return api_response(message="Forum post deleted successfully")


@bp.post("/posts/<post_id>/vote")
@login_required
def vote_post(post_id: str):
    outcome = voting.toggle_forum_vote(current_user.id, "post", post_id, json_body().get("vote"))
    return api_response(outcome.to_dict(), message=outcome.message)


@bp.put("/posts/<post_id>/solved")
@login_required
def mark_solved(post_id: str):
    solved = json_body().get("solved")
    post = forum.set_solved(current_user, post_id, solved)
    return api_response(post, message=f"Post marked as {'solved' if solved else 'unsolved'}")


@bp.post("/posts/<post_id>/comments")
@login_required
def add_comment(post_id: str):
    comment = forum.add_comment(current_user, post_id, json_body().get("content"))
    return api_response(comment, message="Comment added successfully", status=201)


@bp.put("/comments/<comment_id>")
@login_required
def edit_comment(comment_id: str):
    comment = forum.edit_comment(current_user, comment_id, json_body().get("content"))
    return api_response(comment, message="Comment updated successfully")


@bp.delete("/comments/<comment_id>")
@login_required
def delete_comment(comment_id: str):
    forum.delete_comment(current_user, comment_id)
    return api_response(message="Comment deleted successfully")


@bp.post("/comments/<comment_id>/vote")
@login_required
def vote_comment(comment_id: str):
    outcome = voting.toggle_forum_vote(current_user.id, "comment", comment_id, json_body().get("vote"))
    return api_response(outcome.to_dict(), message=outcome.message)


@bp.put("/comments/<comment_id>/accept")
@login_required
def accept_comment(comment_id: str):
    comment = forum.accept_answer(current_user, comment_id)
    return api_response(comment, message="Answer accepted")
