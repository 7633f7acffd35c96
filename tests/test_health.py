"""
Health, request timing, error envelope and config tests.
"""

import logging

import pytest

from siteworks.config import ProductionConfig
from siteworks.middleware.logging_config import JSONFormatter


# ── Health Endpoints ────────────────────────────────────────────────────


class TestHealthEndpoints:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["redis"]["status"] == "skipped"
        assert body["checks"]["permissions"]["count"] > 0
        assert body["checks"]["app"]["testing"] is True

    def test_no_auth_required(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "API_AUTH_ENABLED", "true")
        assert client.get("/api/v1/health/ready").status_code == 200


# ── Request Timing ──────────────────────────────────────────────────────


class TestRequestTiming:
    def test_duration_header_present(self, client):
        res = client.get("/api/v1/roles")
        assert "X-Request-Duration-Ms" in res.headers
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_id_header(self, client):
        res = client.get("/api/v1/roles")
        assert len(res.headers["X-Request-ID"]) == 12

    def test_custom_request_id_passthrough(self, client):
        res = client.get("/api/v1/roles", headers={"X-Request-ID": "site-visit-42"})
        assert res.headers["X-Request-ID"] == "site-visit-42"


# ── Error envelope ──────────────────────────────────────────────────────


class TestErrorHandlers:
    def test_unknown_route(self, client):
        res = client.get("/api/v1/does-not-exist")
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert body["details"] == {"path": "/api/v1/does-not-exist"}

    def test_method_not_allowed(self, client):
        res = client.patch("/api/v1/roles")
        assert res.status_code == 405
        assert res.get_json()["error"] == "Method not allowed"


# ── Config & logging ────────────────────────────────────────────────────


class TestConfig:
    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["NOTIFICATION_RATE_LIMIT_MAX"] == 3

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig()

    def test_production_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/siteworks")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError):
            ProductionConfig()

    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord("siteworks", logging.INFO, __file__, 1, "hello %s", ("site",), None)
        record.uid = "alice"
        record.project_id = 7
        out = JSONFormatter().format(record)
        assert '"message": "hello site"' in out
        assert '"uid": "alice"' in out
        assert '"project_id": 7' in out
