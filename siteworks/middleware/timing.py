"""
Request timing middleware.

Stamps every response with X-Request-ID and X-Request-Duration-Ms and logs
API requests with structured extras. Requests slower than
SLOW_THRESHOLD_MS log at WARNING, server errors at ERROR.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# High-frequency probes are not logged
_SKIP_LOG = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000


def _project_id():
    view_args = request.view_args or {}
    project_id = view_args.get("project_id")
    if project_id is None:
        project_id = request.args.get("project_id", type=int)
    return project_id


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        if not request.path.startswith("/api/") or request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": getattr(g, "request_id", ""),
            "uid": getattr(g, "jwt_uid", None),
            "project_id": _project_id(),
        }
        if response.status_code >= 500:
            log = logger.error
            label = "Server error"
        elif duration_ms > SLOW_THRESHOLD_MS:
            log = logger.warning
            label = "Slow request"
        else:
            log = logger.debug
            label = "Request"
        log("%s: %s %s %d (%.0fms)", label, request.method, request.path,
            response.status_code, duration_ms, extra=extra)
        return response
