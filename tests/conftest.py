import uuid
from collections.abc import Iterator

import pytest

from app import create_app
from app.security import create_access_token, hash_password
from app.services import content_filter, openai_client
from models import reset_engine


@pytest.fixture()
def app(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("DATA_BACKEND", "sql")
    monkeypatch.setenv("EMAIL_ENABLED", "false")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("CONTENT_FILTER_EXTRA_WORDS_PATH", raising=False)

    reset_engine()
    openai_client.reset_client()
    content_filter.reset_wordlist()

    application = create_app({"TESTING": True})

    yield application

    reset_engine()


@pytest.fixture()
def client(app) -> Iterator:
    with app.test_client() as client:
        yield client


@pytest.fixture()
def app_context(app):
    with app.app_context():
        yield


def _unique(label: str) -> str:
    return f"{label}_{uuid.uuid4().hex[:8]}"


@pytest.fixture()
def make_user(app):
    """Create a user row directly and return it."""
    from app.repositories import users_repo

    def _make(name: str = "Abebe Kebede", password: str = "Secret123!", **updates):
        row = users_repo.create_user(
            name=name,
            email=f"{_unique('student')}@example.com",
            password_hash=hash_password(password),
        )
        if updates:
            row = users_repo.update_user(row["id"], updates)
        return row

    return _make


@pytest.fixture()
def auth_headers():
    def _headers(user: dict) -> dict[str, str]:
        token = create_access_token(user["id"], user.get("role") or "STUDENT")
        return {"Authorization": f"Bearer {token}"}

    return _headers
