"""HTTP-level tests: authentication, route guards and error mapping."""

import pytest

from teamchat.api.backup import get_backup_service
from teamchat.core.rate_limiter import api_limiter
from teamchat.models.channel import ChannelVisibility
from teamchat.services.access_control import LAST_ADMIN_ROLE_REMOVAL, SELF_DEACTIVATION
from teamchat.services.backup_service import BackupOutcome
from teamchat.services.backup_sinks import BackupMethod

from conftest import TEST_PASSWORD, auth_headers


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_responses_carry_request_id_and_security_headers(client):
    resp = client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert resp.headers["X-Request-Id"] == "req-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Response-Time-Ms" in resp.headers


def test_global_api_rate_limit(client, monkeypatch):
    monkeypatch.setattr(api_limiter, "max_attempts", 2)
    assert client.get("/api/health").status_code == 200
    assert client.get("/api/health").status_code == 200
    resp = client.get("/api/health")
    assert resp.status_code == 429
    assert resp.json()["detail"]["error"] == "Too many requests"


class TestAuth:
    def test_login_returns_tokens(self, client, member):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["access_token"]
        assert data["user"]["username"] == "alice"

    def test_login_rejects_bad_password(self, client, member):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid username or password"

    def test_login_is_rate_limited(self, client, member):
        for _ in range(5):
            client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
        resp = client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD})
        assert resp.status_code == 429
        assert "reset_time" in resp.json()["detail"]

    def test_register_requires_admin_key(self, client):
        body = {"username": "newbie", "password": "Str0ngPass", "display_name": "Newbie", "admin_key": "nope"}
        resp = client.post("/api/auth/register", json=body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid admin key"

    def test_register_assigns_member_role(self, client):
        body = {
            "username": "newbie", "password": "Str0ngPass",
            "display_name": "Newbie", "admin_key": "test_admin_key",
        }
        resp = client.post("/api/auth/register", json=body)
        assert resp.status_code == 201
        assert resp.json()["user"]["roles"] == ["member"]

    def test_register_rejects_weak_password(self, client):
        body = {"username": "newbie", "password": "weakpass", "display_name": "N", "admin_key": "test_admin_key"}
        resp = client.post("/api/auth/register", json=body)
        assert resp.status_code == 400

    def test_validate_admin_key(self, client):
        assert client.post("/api/auth/validate-admin-key", json={"admin_key": "test_admin_key"}).json() == {"valid": True}
        assert client.post("/api/auth/validate-admin-key", json={"admin_key": "guess"}).json() == {"valid": False}

    def test_me_lists_permissions(self, client, member):
        resp = client.get("/api/auth/me", headers=auth_headers(member))
        assert resp.status_code == 200
        assert resp.json()["permissions"] == ["file_upload", "message_send"]

    def test_missing_or_bad_token(self, client):
        assert client.get("/api/auth/me").status_code == 401
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_deactivated_user_token_rejected(self, client, make_user):
        ghost = make_user("ghost", is_active=False)
        assert client.get("/api/auth/me", headers=auth_headers(ghost)).status_code == 401


class TestUserAdministration:
    def test_member_cannot_list_users(self, client, member):
        assert client.get("/api/users/", headers=auth_headers(member)).status_code == 403

    def test_admin_lists_users(self, client, admin, member):
        resp = client.get("/api/users/", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["total"] == 2

    def test_last_admin_role_removal_is_bad_request(self, client, admin):
        resp = client.put(f"/api/users/{admin.id}/roles", json={"roles": ["member"]}, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["detail"] == LAST_ADMIN_ROLE_REMOVAL

    def test_self_deactivation_is_bad_request(self, client, admin):
        resp = client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["detail"] == SELF_DEACTIVATION

    def test_unknown_user_is_not_found(self, client, admin):
        resp = client.put("/api/users/missing/roles", json={"roles": ["member"]}, headers=auth_headers(admin))
        assert resp.status_code == 404

    def test_admin_deactivates_member(self, client, admin, member):
        resp = client.delete(f"/api/users/{member.id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False


class TestChannels:
    def test_private_channel_is_forbidden_to_member(self, client, member, make_channel):
        channel = make_channel("staff", ChannelVisibility.private, ["admin"])
        resp = client.get(f"/api/channels/{channel.id}", headers=auth_headers(member))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "No read access to this channel"

    def test_missing_channel_is_not_found(self, client, member):
        resp = client.get("/api/channels/does-not-exist", headers=auth_headers(member))
        assert resp.status_code == 404

    def test_member_cannot_create_channel(self, client, member):
        body = {"name": "new", "visibility": "public", "allowed_roles": ["member"]}
        assert client.post("/api/channels/", json=body, headers=auth_headers(member)).status_code == 403

    def test_moderator_creates_channel(self, client, moderator):
        body = {"name": "new", "visibility": "private", "allowed_roles": ["moderator"]}
        resp = client.post("/api/channels/", json=body, headers=auth_headers(moderator))
        assert resp.status_code == 201
        assert resp.json()["allowed_roles"] == ["moderator"]

    def test_listing_hides_private_channels(self, client, member, make_channel):
        make_channel("general", ChannelVisibility.public, ["member"])
        make_channel("staff", ChannelVisibility.private, ["admin"])
        resp = client.get("/api/channels/", headers=auth_headers(member))
        assert [c["name"] for c in resp.json()] == ["general"]


class TestMessages:
    def test_post_and_list(self, client, member, make_channel, broadcaster):
        channel = make_channel()
        resp = client.post(
            "/api/messages/",
            json={"channel_id": channel.id, "content": "hello team"},
            headers=auth_headers(member),
        )
        assert resp.status_code == 201
        assert broadcaster.names() == ["message:new"]

        resp = client.get(f"/api/messages/channel/{channel.id}", headers=auth_headers(member))
        assert [m["content"] for m in resp.json()["messages"]] == ["hello team"]

    def test_post_to_private_channel_forbidden(self, client, member, make_channel):
        channel = make_channel("staff", ChannelVisibility.private, ["admin"])
        resp = client.post(
            "/api/messages/",
            json={"channel_id": channel.id, "content": "hi"},
            headers=auth_headers(member),
        )
        assert resp.status_code == 403


class StubBackupService:
    def __init__(self, success):
        self.success = success
        self.calls = []

    def perform_backup(self, method):
        self.calls.append(("once", method))
        return BackupOutcome(
            success=self.success,
            method=BackupMethod(method),
            duration_ms=5,
            timestamp="2026-01-01T00:00:00+00:00",
            message="Backup completed successfully" if self.success else "Backup failed: disk full",
            error=None if self.success else "disk full",
        )

    def perform_backup_with_retry(self, method, max_retries):
        self.calls.append(("retry", method, max_retries))
        return self.perform_backup(method)


@pytest.fixture
def stub_backup(client):
    from teamchat.main import app

    def install(success=True):
        stub = StubBackupService(success)
        app.dependency_overrides[get_backup_service] = lambda: stub
        return stub

    return install


class TestBackupRoutes:
    def test_requires_admin(self, client, member, stub_backup):
        stub_backup()
        assert client.post("/api/backup/", headers=auth_headers(member)).status_code == 403

    def test_success_is_200(self, client, admin, stub_backup):
        stub = stub_backup(success=True)
        resp = client.post("/api/backup/", json={"method": "github"}, headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert stub.calls == [("once", BackupMethod.github)]

    def test_failure_is_500_with_outcome(self, client, admin, stub_backup):
        stub = stub_backup(success=False)
        resp = client.post(
            "/api/backup/", json={"method": "both", "retry": True, "max_retries": 2},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "disk full"
        assert stub.calls[0] == ("retry", BackupMethod.both, 2)
