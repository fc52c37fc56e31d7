from __future__ import annotations

import pytest

from app.services import email_service


class FakeSES:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    def send_email(self, **kwargs):
        if self.fail:
            raise RuntimeError("SES unavailable")
        self.sent.append(kwargs)
        return {"MessageId": f"msg-{len(self.sent)}"}


@pytest.fixture()
def ses(monkeypatch):
    fake = FakeSES()
    monkeypatch.setenv("EMAIL_ENABLED", "true")
    monkeypatch.setattr(email_service, "_SES_CLIENT", fake)
    return fake


USER = {"name": "Hana", "email": "hana@example.com", "streak": 3, "level": 2, "preferences": {}}


def test_wants_email_respects_preferences():
    assert email_service.wants_email(USER) is True
    assert email_service.wants_email({**USER, "preferences": {"emailNotifications": False}}) is False
    assert email_service.wants_email({**USER, "email": None}) is False


def test_disabled_email_is_skipped(monkeypatch):
    monkeypatch.setenv("EMAIL_ENABLED", "false")

    assert email_service.send_email("hana@example.com", "Hi", "Body") is None


def test_weekly_digest_lists_upcoming_events(ses):
    summary = {
        "xp_gained": 120,
        "events_completed": 2,
        "upcoming_events": [{"title": "Chemistry exam", "event_date": "2025-03-12T09:00:00+00:00"}],
    }

    assert email_service.send_weekly_digest(USER, summary) is True

    message = ses.sent[0]
    body = message["Message"]["Body"]["Text"]["Data"]
    assert message["Destination"] == {"ToAddresses": ["hana@example.com"]}
    assert "- XP earned: 120" in body
    assert "- Chemistry exam (2025-03-12)" in body


def test_password_reset_ignores_opt_out(ses):
    opted_out = {**USER, "preferences": {"emailNotifications": False}}

    assert email_service.send_password_reset(opted_out, "tok123") is True
    assert email_service.send_streak_milestone(opted_out, 7) is False
    assert len(ses.sent) == 1
    assert "reset-password?token=tok123" in ses.sent[0]["Message"]["Body"]["Text"]["Data"]


def test_send_failures_are_swallowed(monkeypatch):
    monkeypatch.setenv("EMAIL_ENABLED", "true")
    monkeypatch.setattr(email_service, "_SES_CLIENT", FakeSES(fail=True))

    assert email_service.send_quietly("hana@example.com", "Hi", "Body") is False
