"""HTTP blueprints and the request helpers they share."""

from __future__ import annotations

import math
from functools import wraps
from typing import Any, Callable, Optional

from flask import Flask, request
from flask_login import current_user, login_required

from app.errors import PermissionDeniedError, ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def role_required(expected_role: str) -> Callable:
    """Ensure the current user has the provided role."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role != expected_role:
                raise PermissionDeniedError("You do not have permission to perform this action.")
            return view(*args, **kwargs)

        return wrapped

    return decorator


def json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def current_user_id() -> Optional[str]:
    return current_user.id if current_user.is_authenticated else None


def int_arg(name: str, default: Optional[int] = None, *, minimum: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number.", {name: "invalid"}) from exc
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}.", {name: "out of range"})
    return value


def int_field(payload: dict[str, Any], name: str, default: int, *, minimum: int) -> int:
    """Integer from a JSON body; booleans and strings that are not numbers are rejected."""
    raw = payload.get(name)
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"{name} must be a number.", {name: "invalid"})
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number.", {name: "invalid"}) from exc
    if value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}.", {name: "out of range"})
    return value


def bool_arg(name: str) -> Optional[bool]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def page_args(default_limit: int = DEFAULT_PAGE_SIZE) -> tuple[int, int, int]:
    """Return (page, limit, offset) from the query string."""
    page = int_arg("page", 1, minimum=1)
    limit = min(int_arg("limit", default_limit, minimum=1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def paginated(items: list[dict[str, Any]], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "items": items,
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


def register_blueprints(app: Flask) -> None:
    from .admin import bp as admin_bp
    from .ai_tutor import bp as ai_tutor_bp
    from .auth import bp as auth_bp
    from .dashboard import bp as dashboard_bp
    from .documents import bp as documents_bp
    from .forum import bp as forum_bp
    from .health import bp as health_bp
    from .planner import bp as planner_bp
    from .search import bp as search_bp
    from .users import bp as users_bp
    from .videos import bp as videos_bp

    for blueprint in (
        health_bp,
        auth_bp,
        users_bp,
        documents_bp,
        videos_bp,
        forum_bp,
        planner_bp,
        dashboard_bp,
        ai_tutor_bp,
        search_bp,
        admin_bp,
    ):
        app.register_blueprint(blueprint)


__all__ = [
    "bool_arg",
    "current_user_id",
    "int_arg",
    "json_body",
    "page_args",
    "paginated",
    "register_blueprints",
    "role_required",
]
