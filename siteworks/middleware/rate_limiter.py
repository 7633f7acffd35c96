"""
HTTP rate limiting — per-blueprint limits applied with Flask-Limiter.

The Limiter instance is created in siteworks/__init__.py with no default
limits; this module applies limits per route category.

The per-user push quota on POST /notifications/send is separate domain
logic on the same ``limits`` storage (see
``siteworks.services.notification.NotificationRateLimiter``).

Usage:
    from siteworks.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

BLUEPRINT_LIMITS = {
    "project_bp": "120/minute",
    "notification_bp": "60/minute",
    "permission_bp": "200/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Project tree CRUD:   120/minute
        - Notifications:        60/minute
        - Roles/permissions:   200/minute (read-heavy, polled by the client)
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: %s",
        ", ".join(f"{name}={limit}" for name, limit in BLUEPRINT_LIMITS.items()),
    )
