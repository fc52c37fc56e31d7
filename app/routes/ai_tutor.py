from __future__ import annotations

from flask import Blueprint
from flask_login import current_user, login_required

from app.errors import NotFoundError, ValidationError, api_response
from app.repositories import tutor_repo
from app.services import tutor

from . import current_user_id, json_body

bp = Blueprint("ai_tutor", __name__, url_prefix="/api/ai-tutor")

MAX_TITLE_LENGTH = 200


def _owned_session(session_id: str) -> dict:
    session = tutor_repo.fetch_session(current_user.id, session_id)
    if session is None:
        raise NotFoundError("Chat session not found.")
    return session


def _title(payload: dict, default: str | None = None) -> str:
    title = str(payload.get("title") or default or "").strip()
    if not title or len(title) > MAX_TITLE_LENGTH:
        raise ValidationError("Title must be between 1 and 200 characters.", {"title": "invalid"})
    return title


@bp.get("/sessions")
@login_required
def list_sessions():
    return api_response(tutor_repo.list_sessions(current_user.id))


@bp.post("/sessions")
@login_required
def create_session():
    title = _title(json_body(), "New Chat Session")
    session = tutor_repo.create_session(current_user.id, title)
    return api_response(session, message="Chat session created successfully", status=201)


@bp.get("/sessions/<session_id>")
@login_required
def get_session(session_id: str):
    return api_response(_owned_session(session_id))


@bp.put("/sessions/<session_id>")
@login_required
def rename_session(session_id: str):
    session = _owned_session(session_id)
    updated = tutor_repo.update_session(session["id"], {"title": _title(json_body())})
    return api_response(updated, message="Chat session updated successfully")


@bp.delete("/sessions/<session_id>")
@login_required
def delete_session(session_id: str):
    session = _owned_session(session_id)
    tutor_repo.delete_session(session["id"])
    return api_response(message="Chat session deleted successfully")


@bp.post("/sessions/<session_id>/messages")
@login_required
def append_message(session_id: str):
    payload = json_body()
    session = tutor.append_message(current_user.id, session_id, payload.get("role"), payload.get("text"))
    return api_response(session, message="Message added successfully")


@bp.post("/chat")
def chat():
    payload = json_body()
    result = tutor.chat(
        current_user_id(),
        payload.get("message"),
        subject=payload.get("subject"),
        grade=payload.get("grade"),
        session_id=payload.get("session_id") or payload.get("sessionId"),
    )
    if result["session_id"] is None:
        result.pop("xp_gained", None)
    return api_response(result, message="AI response generated successfully")


@bp.post("/generate-practice-quiz")
@login_required
def generate_practice_quiz():
    payload = json_body()
    result = tutor.generate_practice_quiz(
        current_user.id,
        subject=payload.get("subject"),
        grade=payload.get("grade"),
        difficulty=payload.get("difficulty") or "Medium",
        count=payload.get("count", 5),
    )
    return api_response(result["questions"], message="Practice quiz generated", xp_gained=result["xp_gained"])


@bp.post("/generate-study-plan")
@login_required
def generate_study_plan():
    payload = json_body()
    result = tutor.generate_study_plan(current_user.id, payload.get("prompt"), payload.get("grade"))
    return api_response(result, message="Study plan generated successfully")
