"""
JWT Service — access-token encoding and verification.

Access tokens are issued by the external auth provider, which signs them
with the shared JWT_SECRET_KEY. ``generate_access_token`` exists for
tooling and tests.

Algorithm: HS256

Token payload (access):
{
    "sub": <uid>,
    "email": <email>,          # optional
    "type": "access",          # optional; when present must be "access"
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Roles are never read from the token; they are resolved from user_roles.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(uid: str, email: str | None = None, expires_in: int | None = None) -> str:
    """Generate a signed access token for ``uid``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": uid,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in if expires_in is not None else _get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    token_type = payload.get("type")
    if token_type is not None and token_type != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {token_type}")
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")

    return payload
