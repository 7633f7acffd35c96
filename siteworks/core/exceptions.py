"""
Platform-wide exception hierarchy.

Services raise these types; blueprints translate them into the standard
JSON error envelope (see ``siteworks.utils.errors``).

The pure engines (roles, permission registry, progress, quality, analytics)
never raise for unknown or malformed input. These exceptions belong to the
service layer only.

Usage:
    from siteworks.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("role is required", details={"role": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Permission").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class RateLimitExceeded(Exception):
    """Raised when a principal exhausts a per-user send quota. Maps to HTTP 429.

    Args:
        uid: The principal whose quota is exhausted.
        retry_after: Seconds until the current window resets.
    """

    def __init__(self, uid: str, retry_after: float) -> None:
        self.uid = uid
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"Send quota exhausted for user {uid}; retry in {self.retry_after:.0f}s"
        )
