"""
SiteWorks Project Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
    - DeviceToken: push-notification registration per user device
"""

from datetime import datetime, timezone

from siteworks.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CATEGORIES = {"project", "work_package", "risk", "milestone", "finance", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


def _utcnow():
    return datetime.now(timezone.utc)


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_uid = db.Column(db.String(128), nullable=False, index=True)
    sender_uid = db.Column(db.String(128), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system")
    severity = db.Column(db.String(20), default="info")
    link = db.Column(db.String(500), default="", comment="Client route to open on tap")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = _utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_uid": self.recipient_uid,
            "sender_uid": self.sender_uid,
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "severity": self.severity,
            "link": self.link,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"


class DeviceToken(db.Model):
    __tablename__ = "device_tokens"

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(128), nullable=False, index=True)
    token = db.Column(db.String(500), nullable=False, unique=True)
    platform = db.Column(db.String(20), default="web", comment="web | ios | android")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_seen_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "uid": self.uid,
            "platform": self.platform,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
