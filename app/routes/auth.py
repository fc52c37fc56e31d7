from __future__ import annotations

import datetime
import logging
import re

from flask import Blueprint
from flask_login import current_user, login_required

from app.errors import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    ValidationError,
    api_response,
)
from app.repositories import tokens_repo, users_repo
from app.security import create_access_token, hash_password, verify_password
from app.services import email_service, gamification, notifications
from models import User

from . import json_body

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_TYPE = "password_reset"
RESET_TOKEN_TTL = datetime.timedelta(hours=1)


def _public_user(row: dict) -> dict:
    return User(row).to_public_dict()


def _session_payload(row: dict) -> dict:
    return {"user": _public_user(row), "token": create_access_token(row["id"], row.get("role") or "STUDENT")}


def _validate_registration(payload: dict) -> tuple[dict[str, str], dict[str, str]]:
    cleaned = {
        "name": str(payload.get("name") or "").strip(),
        "email": str(payload.get("email") or "").strip().lower(),
        "password": payload.get("password") if isinstance(payload.get("password"), str) else "",
    }
    errors: dict[str, str] = {}
    if not cleaned["name"]:
        errors["name"] = "Name is required."
    if not EMAIL_RE.match(cleaned["email"]):
        errors["email"] = "Valid email is required."
    if len(cleaned["password"]) < MIN_PASSWORD_LENGTH:
        errors["password"] = "Password must be at least 6 characters."
    return cleaned, errors


@bp.post("/register")
def register():
    cleaned, errors = _validate_registration(json_body())
    if errors:
        raise ValidationError("Validation failed.", errors)
    if users_repo.fetch_user_by_email(cleaned["email"]):
        raise ConflictError("User with this email already exists.")

    row = users_repo.create_user(
        name=cleaned["name"],
        email=cleaned["email"],
        password_hash=hash_password(cleaned["password"]),
    )
    logger.info("Registered user %s", row["id"])
    notifications.welcome(row["id"], row["name"])
    email_service.send_welcome(row)
    return api_response(_session_payload(row), message="User registered successfully", status=201)


@bp.post("/login")
def login():
    payload = json_body()
    email = str(payload.get("email") or "").strip().lower()
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    if not email or not password:
        raise ValidationError("Email and password are required.")

    row = users_repo.fetch_user_by_email(email)
    if row is None or not verify_password(password, row.get("password_hash")):
        raise AuthenticationError("Invalid credentials.")
    if row.get("status", "active") != "active":
        raise PermissionDeniedError("This account has been suspended.")

    row = gamification.record_login(row["id"])
    return api_response(_session_payload(row), message="Login successful")


@bp.get("/verify")
@login_required
def verify():
    return api_response({"user": current_user.to_public_dict()}, message="Token is valid")


@bp.post("/forgot-password")
def forgot_password():
    email = str(json_body().get("email") or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Valid email is required.", {"email": "invalid"})

    row = users_repo.fetch_user_by_email(email)
    if row is not None:
        token = tokens_repo.create_token(row["id"], RESET_TOKEN_TYPE, ttl=RESET_TOKEN_TTL)
        email_service.send_password_reset(row, token["token"])
    else:
        logger.info("Password reset requested for unknown email")
    return api_response(
        message="If an account with that email exists, a password reset link has been sent."
    )


@bp.post("/reset-password")
def reset_password():
    payload = json_body()
    token = str(payload.get("token") or "")
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Validation failed.", {"password": "Password must be at least 6 characters."})

    record = tokens_repo.fetch_valid_token(token, RESET_TOKEN_TYPE) if token else None
    if record is None:
        raise ValidationError("Invalid or expired reset token.")
    users_repo.update_password(record["user_id"], hash_password(password))
    tokens_repo.mark_used(token)
    return api_response(message="Password has been reset successfully")
