from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from flask import Flask, request
from flask_login import LoginManager
from dotenv import load_dotenv

from config.settings import get_settings
from models import User, get_user_by_id, init_db

from .errors import error_response, register_error_handlers
from .security import TokenError, decode_access_token

logger = logging.getLogger(__name__)

_ENV_LOADED = False


def _ensure_env_loaded() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return

    base_dir = Path(__file__).resolve().parent.parent
    env_path = base_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    _ENV_LOADED = True


login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    return get_user_by_id(user_id)


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@login_manager.request_loader
def load_user_from_request(req) -> Optional[User]:
    token = bearer_token()
    if token is None:
        return None
    try:
        claims = decode_access_token(token)
    except TokenError as exc:
        logger.debug("Rejected access token: %s", exc)
        return None
    user = get_user_by_id(claims.get("sub"))
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return error_response("Access token required.", 401)


def create_app(config: Optional[dict] = None) -> Flask:
    _ensure_env_loaded()

    from models import close_connection, reset_engine

    reset_engine()

    settings = get_settings()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    app.config["MAX_CONTENT_LENGTH"] = settings.MAX_FILE_SIZE
    app.config["JSON_SORT_KEYS"] = False
    if config:
        app.config.update(config)

    login_manager.init_app(app)
    app.teardown_appcontext(close_connection)
    register_error_handlers(app)
    init_db()

    from .routes import register_blueprints

    register_blueprints(app)

    return app
