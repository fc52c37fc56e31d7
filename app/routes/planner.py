from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from app.errors import ValidationError, api_response
from app.repositories import planner_repo
from app.services import planner

from . import json_body

bp = Blueprint("planner", __name__, url_prefix="/api/planner")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return planner.parse_event_date(raw)
    except ValidationError as exc:
        raise ValidationError(f"{name} must be a valid date.", {name: "invalid"}) from exc


@bp.get("/events")
@login_required
def list_events():
    event_type = request.args.get("type") or None
    if event_type and event_type not in planner.EVENT_TYPES:
        raise ValidationError("Valid event type required.", {"type": "invalid"})
    events = planner_repo.list_events(
        current_user.id,
        start=_date_arg("start"),
        end=_date_arg("end"),
        subject=request.args.get("subject") or None,
        event_type=event_type,
    )
    return api_response(events)


@bp.post("/events")
@login_required
def create_event():
    event = planner.create_event(current_user.id, json_body())
    return api_response(event, message="Study event created successfully", status=201)


@bp.put("/events/<event_id>")
@login_required
def update_event(event_id: str):
    event, xp_gained = planner.update_event(current_user.id, event_id, json_body())
    return api_response(event, message="Study event updated successfully", xp_gained=xp_gained)


@bp.delete("/events/<event_id>")
@login_required
def delete_event(event_id: str):
    planner.delete_event(current_user.id, event_id)
    return api_response(message="Study event deleted successfully")


@bp.get("/stats")
@login_required
def stats():
    return api_response(planner.event_stats(current_user.id))


@bp.post("/practice")
@login_required
def record_practice():
    result = planner.record_practice(current_user.id, json_body())
    return api_response(result, message="Practice session recorded successfully", status=201)


@bp.get("/practice/stats")
@login_required
def practice_stats():
    return api_response(planner.practice_stats(current_user.id))
