"""
JWT Auth Middleware — parses the Bearer token and resolves the caller's roles.

Sets on ``g`` for every /api/v1 request:
    g.jwt_uid    — token subject, or None
    g.jwt_email  — email claim, or None
    g.jwt_roles  — active roles from user_roles (never from the token)

A missing, expired or invalid token leaves ``g.jwt_uid`` as None; the
permission decorators decide whether anonymous access is allowed
(see API_AUTH_ENABLED).
"""

import logging

import jwt as pyjwt
from flask import g, request

from siteworks.services.jwt_service import decode_access_token
from siteworks.services.permission_service import get_user_roles

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def current_uid():
    return getattr(g, "jwt_uid", None)


def current_roles() -> tuple:
    return tuple(getattr(g, "jwt_roles", ()) or ())


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_uid = None
        g.jwt_email = None
        g.jwt_roles = ()

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(JWT_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:].strip()
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid token on %s: %s", path, exc)
            return

        g.jwt_uid = str(payload["sub"])
        g.jwt_email = payload.get("email")
        g.jwt_roles = get_user_roles(g.jwt_uid)
