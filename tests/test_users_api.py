from __future__ import annotations

import pytest

from app.repositories import notifications_repo
from app.services import notifications


@pytest.mark.integration
def test_profile_update_merges_preferences(client, make_user, auth_headers):
    headers = auth_headers(make_user())

    response = client.put(
        "/api/users/profile",
        json={"name": "Meron Alemu", "grade": 11, "preferences": {"emailNotifications": False}},
        headers=headers,
    )

    assert response.status_code == 200
    profile = response.get_json()["data"]
    assert profile["name"] == "Meron Alemu"
    assert profile["grade"] == 11
    assert profile["preferences"] == {"emailNotifications": False, "studyReminders": True}
    assert "password_hash" not in profile

    fetched = client.get("/api/users/profile", headers=headers).get_json()["data"]
    assert fetched["bookmarks"] == []
    assert fetched["level_progress"] == 0
    assert fetched["xp_to_next_level"] == 1000


def test_profile_rejects_grade_outside_high_school(client, make_user, auth_headers):
    response = client.put("/api/users/profile", json={"grade": 8}, headers=auth_headers(make_user()))

    assert response.status_code == 400
    assert "grade" in response.get_json()["errors"]


def test_change_password_checks_current_password(client, make_user, auth_headers):
    user = make_user(password="OldPass123")
    headers = auth_headers(user)

    wrong = client.put("/api/users/password", json={"current_password": "nope", "new_password": "NewPass456"},
                       headers=headers)
    assert wrong.status_code == 401

    ok = client.put("/api/users/password", json={"currentPassword": "OldPass123", "newPassword": "NewPass456"},
                    headers=headers)
    assert ok.status_code == 200

    login = client.post("/api/auth/login", json={"email": user["email"], "password": "NewPass456"})
    assert login.status_code == 200


def test_gain_xp_endpoint_reports_level_up(client, make_user, auth_headers):
    headers = auth_headers(make_user(xp=950))

    response = client.post("/api/users/gain-xp", json={"amount": 100}, headers=headers)

    assert response.get_json()["message"] == "Gained 100 XP and reached level 2!"
    assert response.get_json()["data"]["level"] == 2
    assert client.post("/api/users/gain-xp", json={"amount": 5000}, headers=headers).status_code == 400

    badges = client.get("/api/users/badges", headers=headers).get_json()["data"]
    unlocked = {badge["id"]: badge for badge in badges if badge["unlocked"]}
    assert set(unlocked) == {"b1", "b5"}
    assert unlocked["b5"]["unlocked_at"] is not None

    history = client.get("/api/users/xp-history", headers=headers).get_json()["data"]
    assert history[0]["amount"] == 100


def test_leaderboard_excludes_admins(client, make_user):
    make_user(name="Top Student", xp=3000, level=4)
    make_user(name="Runner Up", xp=1500, level=2)
    make_user(name="Admin", xp=99999, role="ADMIN")

    names = [row["name"] for row in client.get("/api/users/leaderboard?limit=5").get_json()["data"]]

    assert names == ["Top Student", "Runner Up"]


def test_upgrade_premium_notifies_once(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    first = client.post("/api/users/upgrade-premium", headers=headers)
    second = client.post("/api/users/upgrade-premium", headers=headers)

    assert first.get_json()["data"]["is_premium"] is True
    assert second.get_json()["message"] == "You already have premium access"
    titles = [row["title"] for row in notifications_repo.list_notifications(user["id"])]
    assert titles.count("Welcome to Premium!") == 1


def test_notifications_read_and_delete(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    first = notifications.notify(user["id"], "Study Reminder", "Physics exam is coming up in 1 day.")
    notifications.notify(user["id"], "Level Up!", "You reached level 2.", "SUCCESS")

    listed = client.get("/api/users/notifications", headers=headers).get_json()
    assert listed["unread_count"] == 2

    marked = client.put("/api/users/notifications/read", json={"ids": [first["id"]]}, headers=headers)
    assert marked.get_json()["data"] == {"updated": 1}
    assert notifications_repo.count_unread(user["id"]) == 1

    assert client.delete(f"/api/users/notifications/{first['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/users/notifications/{first['id']}", headers=headers).status_code == 404


def test_unknown_notification_type_falls_back_to_info(app_context, make_user):
    row = notifications.notify(make_user()["id"], "Heads up", "Something happened", "URGENT")

    assert row["type"] == "INFO"


def test_delete_account_revokes_access(client, make_user, auth_headers):
    headers = auth_headers(make_user())

    assert client.delete("/api/users/account", headers=headers).status_code == 200
    assert client.get("/api/users/profile", headers=headers).status_code == 401


def test_admin_endpoints_require_admin_role(client, make_user, auth_headers):
    student = auth_headers(make_user())
    admin = auth_headers(make_user(role="ADMIN", is_premium=True))

    assert client.get("/api/admin/stats").status_code == 401
    assert client.get("/api/admin/stats", headers=student).status_code == 403

    stats = client.get("/api/admin/stats", headers=admin).get_json()["data"]
    assert stats["total_users"] == 2
    assert stats["premium_users"] == 1
    assert stats["documents"] == 0

    cleanup = client.post("/api/admin/maintenance/cleanup", json={"keep": 10}, headers=admin)
    assert cleanup.get_json()["data"] == {"removed": 0}


@pytest.mark.parametrize("keep", ["all", -1, True, [5]])
def test_admin_cleanup_rejects_invalid_keep(client, make_user, auth_headers, keep):
    admin = auth_headers(make_user(role="ADMIN"))

    response = client.post("/api/admin/maintenance/cleanup", json={"keep": keep}, headers=admin)

    assert response.status_code == 400
    assert "keep" in response.get_json()["errors"]


def test_admin_cleanup_keep_zero_removes_every_read_notification(client, make_user, auth_headers):
    admin_row = make_user(role="ADMIN")
    notifications.notify(admin_row["id"], "Old news", "Already seen")
    notifications_repo.mark_read(admin_row["id"], None)

    response = client.post("/api/admin/maintenance/cleanup", json={"keep": 0}, headers=auth_headers(admin_row))

    assert response.status_code == 200
    assert response.get_json()["data"] == {"removed": 1}
