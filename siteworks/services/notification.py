"""
SiteWorks Project Platform
Notification Service.

Central service for creating, querying and pushing notifications.

Push delivery goes through a pluggable sender stored at
``app.extensions["push_sender"]``:

    sender(tokens: list[str], message: dict) -> list[bool]

one success flag per token, in order. The default sender only logs.
Tokens reported as failed are deactivated.

Sends are throttled per sender uid by ``NotificationRateLimiter``
(fixed window, default 10 sends per 60 seconds).
"""

import logging
import time
from datetime import datetime, timezone

from flask import current_app
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from siteworks.core.exceptions import RateLimitExceeded, ValidationError
from siteworks.models import db
from siteworks.models.notification import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_SEVERITIES,
    DeviceToken,
    Notification,
)

logger = logging.getLogger(__name__)

PUSH_SENDER_EXTENSION_KEY = "push_sender"
RATE_LIMITER_EXTENSION_KEY = "notification_rate_limiter"

DEFAULT_RATE_LIMIT_MAX = 10
DEFAULT_RATE_LIMIT_WINDOW = 60  # seconds


class NotificationRateLimiter:
    """Per-uid fixed-window quota on top of the ``limits`` engine used by Flask-Limiter.

    The first send opens a window of ``window_seconds``; up to
    ``max_requests`` sends are accepted inside it. Counters live in the
    same storage as the HTTP limits (Redis when ``REDIS_URL`` is set,
    otherwise process memory) and expire with their window.
    """

    def __init__(self, max_requests=DEFAULT_RATE_LIMIT_MAX, window_seconds=DEFAULT_RATE_LIMIT_WINDOW,
                 storage_uri="memory://"):
        self.max_requests = int(max_requests)
        self.window_seconds = int(window_seconds)
        self.item = RateLimitItemPerSecond(self.max_requests, self.window_seconds, namespace="NOTIFY")
        self.storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, uid: str) -> None:
        """Count one send for ``uid``.

        Raises:
            RateLimitExceeded: quota for the current window is used up.
        """
        if self._strategy.hit(self.item, uid):
            return
        reset_at, _ = self._strategy.get_window_stats(self.item, uid)
        raise RateLimitExceeded(uid, retry_after=max(0.0, reset_at - time.time()))

    def remaining(self, uid: str) -> int:
        return self._strategy.get_window_stats(self.item, uid).remaining

    def reset(self, uid: str | None = None) -> None:
        if uid is None:
            self.storage.reset()
        else:
            self._strategy.clear(self.item, uid)


def log_push_sender(tokens, message):
    """Default sender: record the push and report every token as delivered."""
    logger.info("Push (log only) to %d device(s): %s", len(tokens), message.get("title"))
    return [True] * len(tokens)


def get_rate_limiter(app=None) -> NotificationRateLimiter:
    app = app or current_app
    limiter = app.extensions.get(RATE_LIMITER_EXTENSION_KEY)
    if limiter is None:
        limiter = NotificationRateLimiter(
            max_requests=app.config.get("NOTIFICATION_RATE_LIMIT_MAX", DEFAULT_RATE_LIMIT_MAX),
            window_seconds=app.config.get("NOTIFICATION_RATE_LIMIT_WINDOW", DEFAULT_RATE_LIMIT_WINDOW),
            storage_uri=app.config.get("REDIS_URL") or "memory://",
        )
        app.extensions[RATE_LIMITER_EXTENSION_KEY] = limiter
    return limiter


def get_push_sender(app=None):
    app = app or current_app
    return app.extensions.get(PUSH_SENDER_EXTENSION_KEY) or log_push_sender


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_uid, title, body="", category="system", severity="info",
               link="", sender_uid=None, commit=True):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (committed unless commit=False).
        """
        notif = Notification(
            recipient_uid=recipient_uid,
            sender_uid=sender_uid,
            title=title,
            body=body,
            category=category if category in NOTIFICATION_CATEGORIES else "system",
            severity=severity if severity in NOTIFICATION_SEVERITIES else "info",
            link=link or "",
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_uid, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_uid=recipient_uid)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_uid):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_uid=recipient_uid, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_uid=None):
        """Mark a single notification as read.

        Returns None when the id is unknown or belongs to another recipient.
        """
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            return None
        if recipient_uid is not None and notif.recipient_uid != recipient_uid:
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_uid):
        """Mark all notifications for a recipient as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient_uid=recipient_uid, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    # ── Devices ───────────────────────────────────────────────────────────

    @staticmethod
    def register_device_token(uid, token, platform="web"):
        """Attach ``token`` to ``uid``; a token moves to the latest uid that registers it."""
        if not token or not isinstance(token, str):
            raise ValidationError("token is required")
        device = DeviceToken.query.filter_by(token=token).first()
        if device is None:
            device = DeviceToken(token=token)
            db.session.add(device)
        device.uid = uid
        device.platform = platform or "web"
        device.is_active = True
        device.last_seen_at = datetime.now(timezone.utc)
        db.session.commit()
        return device

    @staticmethod
    def active_tokens(uids):
        if not uids:
            return []
        rows = (
            DeviceToken.query
            .filter(DeviceToken.uid.in_(list(uids)), DeviceToken.is_active.is_(True))
            .order_by(DeviceToken.id)
            .all()
        )
        return [r.token for r in rows]

    @staticmethod
    def deactivate_tokens(tokens):
        if not tokens:
            return 0
        count = (
            DeviceToken.query.filter(DeviceToken.token.in_(list(tokens)))
            .update({"is_active": False}, synchronize_session="fetch")
        )
        db.session.commit()
        logger.warning("Deactivated %d failed device token(s)", count)
        return count

    # ── Push ──────────────────────────────────────────────────────────────

    @staticmethod
    def send_push(*, sender_uid, recipient_uids, title, body, category="system",
                  severity="info", link=""):
        """
        Store one notification per recipient and push to their active devices.

        Raises:
            RateLimitExceeded: sender used up the send quota.
            ValidationError: missing title/body or recipients.

        Returns:
            dict with created notifications, delivered count and failed tokens.
        """
        get_rate_limiter().hit(sender_uid)

        if not title or not body:
            raise ValidationError("title and body are required")
        if isinstance(recipient_uids, str):
            recipient_uids = [recipient_uids]
        recipients = list(dict.fromkeys(u for u in (recipient_uids or []) if u))
        if not recipients:
            raise ValidationError("recipient_uids is required")

        notifications = [
            NotificationService.create(
                recipient_uid=uid, sender_uid=sender_uid, title=title, body=body,
                category=category, severity=severity, link=link, commit=False,
            )
            for uid in recipients
        ]
        db.session.commit()

        tokens = NotificationService.active_tokens(recipients)
        failed_tokens = []
        if tokens:
            message = {"title": title, "body": body, "link": link or "", "category": category}
            results = list(get_push_sender()(tokens, message))
            failed_tokens = [
                token for idx, token in enumerate(tokens)
                if idx >= len(results) or not results[idx]
            ]
            if failed_tokens:
                NotificationService.deactivate_tokens(failed_tokens)

        logger.info(
            "Push from %s: %d recipient(s), %d device(s), %d failed",
            sender_uid, len(recipients), len(tokens), len(failed_tokens),
        )
        return {
            "notifications": notifications,
            "delivered": len(tokens) - len(failed_tokens),
            "failed_tokens": failed_tokens,
        }
