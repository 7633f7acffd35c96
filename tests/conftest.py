"""
Shared pytest fixtures for the SiteWorks test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + fresh registry and quotas (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_headers: principals with roles and Bearer tokens
"""

import pytest

from siteworks import create_app
from siteworks.models import db as _db
from siteworks.models.auth import User, UserRole
from siteworks.services.jwt_service import generate_access_token
from siteworks.services.notification import get_rate_limiter
from siteworks.services.permission_registry import PermissionRegistry
from siteworks.services.permission_service import (
    REGISTRY_EXTENSION_KEY,
    invalidate_all_cache,
    load_registry,
)


class RecordingPushSender:
    """Push sender double: records calls, fails the tokens listed in ``failing``."""

    def __init__(self):
        self.calls = []
        self.failing = set()

    def __call__(self, tokens, message):
        self.calls.append((list(tokens), dict(message)))
        return [token not in self.failing for token in tokens]

    def reset(self):
        self.calls.clear()
        self.failing.clear()


_push_sender = RecordingPushSender()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing", push_sender=_push_sender)


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: seed the catalog into a fresh registry, recreate tables afterwards."""
    with app.app_context():
        invalidate_all_cache()
        get_rate_limiter(app).reset()
        _push_sender.reset()
        app.extensions[REGISTRY_EXTENSION_KEY] = PermissionRegistry()
        load_registry(app)
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def push_sender():
    return _push_sender


@pytest.fixture()
def registry(app):
    return app.extensions[REGISTRY_EXTENSION_KEY]


# ── Principals ───────────────────────────────────────────────────────────


def _make_user(uid, *roles, email=None):
    user = User(uid=uid, email=email or f"{uid}@acme-construction.com", display_name=uid.title())
    for role in roles:
        user.roles.append(UserRole(role=role, assigned_by="test"))
    _db.session.add(user)
    _db.session.commit()
    invalidate_all_cache()
    return user


def _auth_headers(uid):
    return {"Authorization": f"Bearer {generate_access_token(uid)}"}


@pytest.fixture()
def make_user():
    """Factory: make_user("alice", "manager", "safety") -> User."""
    return _make_user


@pytest.fixture()
def auth_headers():
    """Factory: auth_headers("alice") -> {"Authorization": "Bearer ..."}."""
    return _auth_headers


@pytest.fixture()
def owner_headers():
    _make_user("boss", "owner")
    return _auth_headers("boss")


@pytest.fixture()
def admin_headers():
    _make_user("admin-1", "admin")
    return _auth_headers("admin-1")


@pytest.fixture()
def manager_headers():
    _make_user("manager-1", "manager")
    return _auth_headers("manager-1")


@pytest.fixture()
def user_headers():
    _make_user("worker-1", "user")
    return _auth_headers("worker-1")


@pytest.fixture()
def temp_headers():
    _make_user("temp-1", "temporary")
    return _auth_headers("temp-1")
