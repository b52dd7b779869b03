"""Admin passkey gate tests."""

from __future__ import annotations

ADMIN_PASSKEY = "test-passkey"


def test_wrong_passkey_is_rejected(client):
    response = client.post("/auth/login", data={"passkey": "1234"}, follow_redirects=True)
    assert response.status_code == 200
    assert b"Invalid passkey" in response.data

    dashboard = client.get("/admin/", follow_redirects=False)
    assert dashboard.status_code == 302
    assert "/auth/login" in dashboard.headers["Location"]


def test_correct_passkey_unlocks_dashboard(client):
    response = client.post("/auth/login", data={"passkey": ADMIN_PASSKEY}, follow_redirects=True)
    assert response.status_code == 200
    assert b"Admin Dashboard" in response.data

    client.get("/auth/logout", follow_redirects=True)
    assert client.get("/admin/", follow_redirects=False).status_code == 302


def test_admin_actions_require_login(client):
    response = client.post("/admin/resources/abc/delete", follow_redirects=False)
    assert response.status_code == 302
    assert "/auth/login" in response.headers["Location"]
