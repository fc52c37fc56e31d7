"""Smoke tests for the health check and the JSON error envelope."""
import pytest


@pytest.mark.smoke
def test_health_endpoint_returns_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "service": "smartstudy"}


@pytest.mark.smoke
def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/lessons")
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["success"] is False
    assert payload["message"]


@pytest.mark.smoke
def test_protected_route_requires_token(client):
    response = client.get("/api/users/profile")
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "message": "Access token required."}


@pytest.mark.smoke
def test_public_listings_are_reachable(client):
    for path in ("/api/documents", "/api/videos", "/api/forum/posts", "/api/users/leaderboard"):
        response = client.get(path)
        assert response.status_code == 200, path
        assert response.get_json()["success"] is True
