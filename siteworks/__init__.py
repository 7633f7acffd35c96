"""
SiteWorks Project Platform
Flask Application Factory.

Usage:
    from siteworks import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from siteworks.config import config
from siteworks.middleware.jwt_auth import init_jwt_middleware
from siteworks.middleware.logging_config import configure_logging
from siteworks.middleware.rate_limiter import init_rate_limits
from siteworks.middleware.timing import init_request_timing
from siteworks.models import db
from siteworks.services.notification import (
    PUSH_SENDER_EXTENSION_KEY,
    NotificationRateLimiter,
    RATE_LIMITER_EXTENSION_KEY,
    log_push_sender,
)
from siteworks.services.permission_registry import PermissionRegistry
from siteworks.services.permission_service import REGISTRY_EXTENSION_KEY, load_registry
from siteworks.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def create_app(config_name=None, push_sender=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        push_sender: Optional callable ``(tokens, message) -> list[bool]``
                     used for push delivery. Defaults to a log-only sender.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Domain singletons, one per app ───────────────────────────────────
    app.extensions[REGISTRY_EXTENSION_KEY] = PermissionRegistry()
    app.extensions[RATE_LIMITER_EXTENSION_KEY] = NotificationRateLimiter(
        max_requests=app.config["NOTIFICATION_RATE_LIMIT_MAX"],
        window_seconds=app.config["NOTIFICATION_RATE_LIMIT_WINDOW"],
        storage_uri=app.config.get("REDIS_URL") or "memory://",
    )
    app.extensions[PUSH_SENDER_EXTENSION_KEY] = push_sender or log_push_sender

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from siteworks.models import auth as _auth_models                  # noqa: F401
    from siteworks.models import notification as _notification_models  # noqa: F401
    from siteworks.models import project as _project_models            # noqa: F401

    # ── Tables + permission catalog ──────────────────────────────────────
    with app.app_context():
        try:
            db.create_all()
            load_registry(app)
        except Exception as e:
            app.logger.warning("Database bootstrap failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from siteworks.blueprints.health_bp import health_bp
    from siteworks.blueprints.notification_bp import notification_bp
    from siteworks.blueprints.permission_bp import permission_bp
    from siteworks.blueprints.project_bp import project_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(permission_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(notification_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-permissions")
    def seed_permissions_cmd():
        """Insert missing default permission definitions and reload the registry."""
        from siteworks.services.permission_service import seed_default_permissions
        count = seed_default_permissions()
        load_registry(app, seed=False)
        logger.info("Seeded %s new permission definitions.", count)

    @app.cli.command("assign-role")
    @click.argument("uid")
    @click.argument("role")
    def assign_role_cmd(uid, role):
        """Grant ROLE to an existing user (bootstrap the first administrator)."""
        from siteworks.services.permission_service import assign_role
        assignment = assign_role(uid, role, assigned_by="cli")
        logger.info("Assigned %s to %s.", assignment.role, uid)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
