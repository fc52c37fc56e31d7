"""Forum votes, video likes, completions and post views.

Counters on the parent rows are recomputed from the vote and like rows after
every change, inside the same transaction as the change itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from app.errors import NotFoundError, ValidationError
from app.services import gamification
from models.table_api import atomic

VOTE_TARGETS = {"post": "forum_posts", "comment": "forum_comments"}
VIDEO_COMPLETION_XP = 100


@dataclass(frozen=True)
class VoteOutcome:
    votes: int
    user_vote: Optional[int]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"votes": self.votes, "user_vote": self.user_vote}


def _vote_message(label: str, previous: Optional[int], vote: int, user_vote: Optional[int]) -> str:
    if user_vote is None:
        return "Vote removed"
    if previous is not None:
        return "Vote changed to upvote" if vote == 1 else "Vote changed to downvote"
    return f"{label} upvoted" if vote == 1 else f"{label} downvoted"


def toggle_forum_vote(user_id: str, target_type: str, target_id: str, vote: Any) -> VoteOutcome:
    """Apply an up or down vote: repeating a vote removes it, the opposite flips it."""
    table = VOTE_TARGETS.get(target_type)
    if table is None:
        raise ValidationError("Vote target must be a post or a comment.")
    try:
        vote = int(vote)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Vote must be 1 or -1.") from exc
    if vote not in (1, -1):
        raise ValidationError("Vote must be 1 or -1.")

    with atomic() as client:
        target = client.table(table).select("id").eq("id", target_id).limit(1).execute().data
        if not target:
            raise NotFoundError("Post not found." if target_type == "post" else "Comment not found.")

        votes = client.table("forum_votes")
        existing = (
            votes.select("*")
            .eq("user_id", user_id)
            .eq("target_type", target_type)
            .eq("target_id", target_id)
            .limit(1)
            .execute()
            .data
        )
        previous = int(existing[0]["vote_value"]) if existing else None

        if previous == vote:
            client.table("forum_votes").delete().eq("id", existing[0]["id"]).execute()
            user_vote = None
        elif previous is not None:
            client.table("forum_votes").update({"vote_value": vote}).eq("id", existing[0]["id"]).execute()
            user_vote = vote
        else:
            client.table("forum_votes").insert(
                {
                    "user_id": user_id,
                    "target_type": target_type,
                    "target_id": target_id,
                    "vote_value": vote,
                }
            ).execute()
            user_vote = vote

        refreshed = client.rpc(
            "refresh_target_votes",
            {"target_type": target_type, "target_id": target_id},
        )

    total = int(refreshed[0]["votes"]) if refreshed else 0
    label = "Post" if target_type == "post" else "Comment"
    return VoteOutcome(total, user_vote, _vote_message(label, previous, vote, user_vote))


def set_video_like(user_id: str, video_id: str, liked: bool) -> dict[str, Any]:
    """Like or unlike a video; repeating the same request changes nothing."""
    with atomic() as client:
        if not client.table("videos").select("id").eq("id", video_id).limit(1).execute().data:
            raise NotFoundError("Video not found.")
        if liked:
            client.table("video_likes").upsert(
                {"user_id": user_id, "video_id": video_id},
                on_conflict=("user_id", "video_id"),
                ignore_duplicates=True,
            ).execute()
        else:
            client.table("video_likes").delete().eq("user_id", user_id).eq("video_id", video_id).execute()
        refreshed = client.rpc("refresh_video_likes", {"video_id": video_id})

    return {
        "likes": int(refreshed[0]["likes"]) if refreshed else 0,
        "user_has_liked": bool(liked),
        "message": "Video liked" if liked else "Video unliked",
    }


def set_video_completion(user_id: str, video_id: str, completed: bool) -> dict[str, Any]:
    """Mark a video finished. Only the first completion earns XP."""
    xp_result = None
    with atomic() as client:
        if not client.table("videos").select("id").eq("id", video_id).limit(1).execute().data:
            raise NotFoundError("Video not found.")
        if completed:
            inserted = (
                client.table("video_completions")
                .upsert(
                    {"user_id": user_id, "video_id": video_id, "xp_awarded": VIDEO_COMPLETION_XP},
                    on_conflict=("user_id", "video_id"),
                    ignore_duplicates=True,
                )
                .execute()
                .data
            )
            if inserted:
                xp_result = gamification.gain_xp(
                    user_id, VIDEO_COMPLETION_XP, "video", "Completed video lesson"
                )
        else:
            client.table("video_completions").delete().eq("user_id", user_id).eq(
                "video_id", video_id
            ).execute()

    payload: dict[str, Any] = {
        "user_has_completed": bool(completed),
        "xp_gained": xp_result["xp_gained"] if xp_result else 0,
        "message": "Video marked as completed" if completed else "Video marked as not completed",
    }
    if xp_result:
        payload["xp"] = xp_result["xp"]
        payload["level"] = xp_result["level"]
    return payload


def record_post_view(user_id: Optional[str], post_id: str) -> bool:
    """Count a user's first view of a post. Anonymous views are not counted."""
    if not user_id:
        return False
    with atomic() as client:
        inserted = (
            client.table("forum_views")
            .upsert(
                {"user_id": user_id, "post_id": post_id},
                on_conflict=("user_id", "post_id"),
                ignore_duplicates=True,
            )
            .execute()
            .data
        )
        if inserted:
            client.rpc("increment_post_views", {"post_id": post_id})
    return bool(inserted)
