from __future__ import annotations

import datetime
import uuid

import pytest

from app.repositories import notifications_repo, tokens_repo, users_repo
from app.routes.auth import RESET_TOKEN_TYPE


def _unique(label: str) -> str:
    return f"{label}_{uuid.uuid4().hex[:8]}"


def _register(client, email: str | None = None, password: str = "Secret123!"):
    return client.post(
        "/api/auth/register",
        json={"name": "Hana Tesfaye", "email": email or f"{_unique('hana')}@example.com", "password": password},
    )


@pytest.mark.integration
def test_register_returns_user_and_token(client):
    response = _register(client, "Hana@Example.com")

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["message"] == "User registered successfully"
    assert payload["data"]["user"]["email"] == "hana@example.com"
    assert "password_hash" not in payload["data"]["user"]
    assert payload["data"]["token"]

    user_id = payload["data"]["user"]["id"]
    titles = [row["title"] for row in notifications_repo.list_notifications(user_id)]
    assert titles == ["Welcome to SmartStudy!"]


def test_register_validation_errors_use_envelope(client):
    response = client.post("/api/auth/register", json={"name": "", "email": "nope", "password": "123"})

    assert response.status_code == 400
    payload = response.get_json()
    assert payload["success"] is False
    assert set(payload["errors"]) == {"name", "email", "password"}


def test_register_duplicate_email_conflicts(client):
    _register(client, "dupe@example.com")

    response = _register(client, "dupe@example.com")

    assert response.status_code == 409
    assert response.get_json()["message"] == "User with this email already exists."


@pytest.mark.integration
def test_login_and_verify_round_trip(client):
    _register(client, "login@example.com")

    login = client.post("/api/auth/login", json={"email": "login@example.com", "password": "Secret123!"})
    assert login.status_code == 200
    token = login.get_json()["data"]["token"]
    assert login.get_json()["data"]["user"]["streak"] == 1

    verify = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert verify.status_code == 200
    assert verify.get_json()["data"]["user"]["email"] == "login@example.com"


def test_login_rejects_bad_password(client):
    _register(client, "wrong@example.com")

    response = client.post("/api/auth/login", json={"email": "wrong@example.com", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.get_json() == {"success": False, "message": "Invalid credentials."}


def test_suspended_user_cannot_log_in(client, app_context):
    registered = _register(client, "suspended@example.com").get_json()["data"]["user"]
    users_repo.update_user(registered["id"], {"status": "suspended"})

    response = client.post("/api/auth/login", json={"email": "suspended@example.com", "password": "Secret123!"})

    assert response.status_code == 403


def test_verify_requires_token(client):
    response = client.get("/api/auth/verify")

    assert response.status_code == 401
    assert response.get_json() == {"success": False, "message": "Access token required."}


def test_verify_rejects_garbage_token(client):
    response = client.get("/api/auth/verify", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_forgot_password_never_reveals_accounts(client):
    known = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})

    assert known.status_code == 200
    assert known.get_json()["success"] is True


@pytest.mark.integration
def test_reset_password_flow(client, app_context):
    user = _register(client, "reset@example.com").get_json()["data"]["user"]
    client.post("/api/auth/forgot-password", json={"email": "reset@example.com"})
    token = tokens_repo.create_token(user["id"], RESET_TOKEN_TYPE, ttl=datetime.timedelta(hours=1))

    response = client.post("/api/auth/reset-password", json={"token": token["token"], "password": "BrandNew456"})
    assert response.status_code == 200

    reused = client.post("/api/auth/reset-password", json={"token": token["token"], "password": "Another789"})
    assert reused.status_code == 400

    login = client.post("/api/auth/login", json={"email": "reset@example.com", "password": "BrandNew456"})
    assert login.status_code == 200


def test_reset_password_rejects_expired_token(client, app_context):
    user = _register(client, "expired@example.com").get_json()["data"]["user"]
    token = tokens_repo.create_token(user["id"], RESET_TOKEN_TYPE, ttl=datetime.timedelta(seconds=-1))

    response = client.post("/api/auth/reset-password", json={"token": token["token"], "password": "BrandNew456"})

    assert response.status_code == 400
    assert response.get_json()["message"] == "Invalid or expired reset token."
