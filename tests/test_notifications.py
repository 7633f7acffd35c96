"""
Notification tests — rate limiter, service and API.

TestingConfig caps sends at 3 per 60 seconds per sender.
"""

import time

import pytest

from siteworks.core.exceptions import RateLimitExceeded, ValidationError
from siteworks.models.notification import DeviceToken, Notification
from siteworks.services.notification import NotificationRateLimiter, NotificationService


# ═════════════════════════════════════════════════════════════════════════════
# Rate limiter
# ═════════════════════════════════════════════════════════════════════════════


class TestRateLimiter:
    def test_window_allows_max_then_raises(self):
        limiter = NotificationRateLimiter(max_requests=2, window_seconds=60)
        limiter.hit("a")
        limiter.hit("a")
        assert limiter.remaining("a") == 0
        with pytest.raises(RateLimitExceeded) as exc:
            limiter.hit("a")
        assert exc.value.uid == "a"
        assert 0 < exc.value.retry_after <= 60

    def test_window_resets(self):
        limiter = NotificationRateLimiter(max_requests=1, window_seconds=1)
        limiter.hit("a")
        time.sleep(1.1)
        limiter.hit("a")
        assert limiter.remaining("a") == 0

    def test_expired_windows_are_dropped(self):
        limiter = NotificationRateLimiter(max_requests=1, window_seconds=1)
        for i in range(200):
            limiter.hit(f"sender-{i}")
        time.sleep(1.1)
        limiter.hit("late-sender")
        time.sleep(0.2)
        assert len(limiter.storage.storage) == 1

    def test_counters_are_per_uid(self):
        limiter = NotificationRateLimiter(max_requests=1, window_seconds=60)
        limiter.hit("a")
        limiter.hit("b")
        with pytest.raises(RateLimitExceeded):
            limiter.hit("a")

    def test_reset(self):
        limiter = NotificationRateLimiter(max_requests=1, window_seconds=60)
        limiter.hit("a")
        limiter.hit("b")
        limiter.reset("a")
        assert limiter.remaining("a") == 1
        assert limiter.remaining("b") == 0
        limiter.reset()
        assert limiter.remaining("b") == 1


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════


class TestNotificationService:
    def test_create_falls_back_on_unknown_category(self):
        notif = NotificationService.create(recipient_uid="u1", title="Hi", category="gossip", severity="loud")
        assert notif.category == "system"
        assert notif.severity == "info"

    def test_inbox_and_mark_read(self):
        first = NotificationService.create(recipient_uid="u1", title="One")
        NotificationService.create(recipient_uid="u1", title="Two")
        NotificationService.create(recipient_uid="u2", title="Other")

        items, total = NotificationService.list_for_recipient("u1")
        assert total == 2
        assert NotificationService.unread_count("u1") == 2

        assert NotificationService.mark_read(first.id, recipient_uid="u2") is None
        assert NotificationService.mark_read(first.id, recipient_uid="u1").is_read is True
        assert NotificationService.unread_count("u1") == 1

        _, unread_total = NotificationService.list_for_recipient("u1", unread_only=True)
        assert unread_total == 1
        assert NotificationService.mark_all_read("u1") == 1
        assert NotificationService.unread_count("u1") == 0
        assert NotificationService.unread_count("u2") == 1

    def test_device_token_moves_between_users(self):
        NotificationService.register_device_token("u1", "tok-1", "ios")
        NotificationService.register_device_token("u2", "tok-1", "ios")
        assert NotificationService.active_tokens(["u1"]) == []
        assert NotificationService.active_tokens(["u2"]) == ["tok-1"]
        assert DeviceToken.query.count() == 1

    def test_device_token_required(self):
        with pytest.raises(ValidationError):
            NotificationService.register_device_token("u1", "", "web")

    def test_send_push_delivers_and_deactivates_failures(self, push_sender):
        NotificationService.register_device_token("u1", "good", "android")
        NotificationService.register_device_token("u2", "bad", "web")
        push_sender.failing.add("bad")

        result = NotificationService.send_push(
            sender_uid="boss", recipient_uids=["u1", "u2", "u1"], title="Pour today", body="Slab 3 at 14:00",
            category="work_package",
        )
        assert len(result["notifications"]) == 2
        assert result["delivered"] == 1
        assert result["failed_tokens"] == ["bad"]
        assert push_sender.calls[0][0] == ["good", "bad"]
        assert push_sender.calls[0][1]["title"] == "Pour today"
        assert NotificationService.active_tokens(["u1", "u2"]) == ["good"]

    def test_send_push_counts_rejected_attempts(self):
        for _ in range(3):
            with pytest.raises(ValidationError):
                NotificationService.send_push(sender_uid="s", recipient_uids=[], title="t", body="b")
        with pytest.raises(RateLimitExceeded):
            NotificationService.send_push(sender_uid="s", recipient_uids=["u1"], title="t", body="b")
        assert Notification.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


def _send(client, headers, **overrides):
    payload = {"recipient_uids": ["worker-1"], "title": "Site closed", "body": "Storm warning", **overrides}
    return client.post("/api/v1/notifications/send", json=payload, headers=headers)


class TestNotificationAPI:
    def test_send_and_read(self, client, manager_headers, user_headers):
        res = _send(client, manager_headers, severity="warning", link="/projects/1")
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["delivered"] == 0
        assert body["notifications"][0]["recipient_uid"] == "worker-1"

        inbox = client.get("/api/v1/notifications", headers=user_headers).get_json()
        assert inbox["total"] == 1
        notif = inbox["items"][0]
        assert notif["sender_uid"] == "manager-1"
        assert notif["severity"] == "warning"

        count = client.get("/api/v1/notifications/unread-count", headers=user_headers).get_json()
        assert count == {"unread_count": 1}

        res = client.post(f"/api/v1/notifications/{notif['id']}/read", headers=user_headers)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

    def test_cannot_read_someone_elses(self, client, manager_headers, user_headers):
        notif_id = _send(client, manager_headers).get_json()["notifications"][0]["id"]
        res = client.post(f"/api/v1/notifications/{notif_id}/read", headers=manager_headers)
        assert res.status_code == 404

    def test_read_all(self, client, manager_headers, user_headers):
        _send(client, manager_headers)
        _send(client, manager_headers)
        res = client.post("/api/v1/notifications/read-all", headers=user_headers)
        assert res.get_json() == {"marked_read": 2}

    def test_quota_returns_429(self, client, manager_headers):
        for _ in range(3):
            assert _send(client, manager_headers).status_code == 201
        res = _send(client, manager_headers)
        assert res.status_code == 429
        body = res.get_json()
        assert body["code"] == "ERR_RATE_LIMITED"
        assert 0 < body["details"]["retry_after"] <= 60
        assert res.headers["Retry-After"] == str(body["details"]["retry_after"])

    def test_quota_is_per_sender(self, client, manager_headers, owner_headers):
        for _ in range(3):
            _send(client, manager_headers)
        assert _send(client, manager_headers).status_code == 429
        assert _send(client, owner_headers).status_code == 201

    @pytest.mark.parametrize("overrides", [
        {"title": ""},
        {"body": "   "},
        {"recipient_uids": []},
    ])
    def test_send_validation(self, client, manager_headers, overrides):
        res = _send(client, manager_headers, **overrides)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_send_invalid_category(self, client, manager_headers):
        res = _send(client, manager_headers, category="gossip")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_send_requires_foreman(self, client, user_headers, make_user, auth_headers):
        assert _send(client, user_headers).status_code == 403
        make_user("foreman-1", "foreman")
        assert _send(client, auth_headers("foreman-1")).status_code == 201

    def test_push_to_registered_device(self, client, manager_headers, user_headers, push_sender):
        res = client.post("/api/v1/notifications/device-tokens", json={"token": "fcm-123", "platform": "android"},
                          headers=user_headers)
        assert res.status_code == 201
        assert res.get_json()["uid"] == "worker-1"

        body = _send(client, manager_headers).get_json()
        assert body["delivered"] == 1
        assert push_sender.calls[0][0] == ["fcm-123"]

    def test_device_token_required(self, client, user_headers):
        res = client.post("/api/v1/notifications/device-tokens", json={}, headers=user_headers)
        assert res.status_code == 400

    def test_anonymous_inbox_is_401(self, client):
        assert client.get("/api/v1/notifications").status_code == 401
