"""
SiteWorks Project Platform
Notification Blueprint.

Provides:
    - Personal notification inbox (list, unread count, mark read)
    - Device token registration for push delivery
    - Push send with a per-sender quota (429 when exhausted)
"""

from __future__ import annotations

import logging
import math

from flask import Blueprint, g, jsonify, request

from siteworks.core.exceptions import RateLimitExceeded, ValidationError
from siteworks.middleware.permission_required import require_permission
from siteworks.models.notification import NOTIFICATION_CATEGORIES, NOTIFICATION_SEVERITIES
from siteworks.services.notification import NotificationService
from siteworks.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


def _caller():
    """Authenticated uid, or a 401 response tuple."""
    uid = getattr(g, "jwt_uid", None)
    if uid is None:
        return None, api_error(E.UNAUTHORIZED, "Authentication required")
    return uid, None


def _int_arg(name, default, minimum=0, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


# ═══════════════════════════════════════════════════════════════════════════
#  INBOX
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_permission("notification:read")
def list_notifications():
    uid, err = _caller()
    if err:
        return err
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    items, total = NotificationService.list_for_recipient(
        uid,
        unread_only=unread_only,
        limit=_int_arg("limit", 50, minimum=1, maximum=200),
        offset=_int_arg("offset", 0),
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total}), 200


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_permission("notification:read")
def unread_count():
    uid, err = _caller()
    if err:
        return err
    return jsonify({"unread_count": NotificationService.unread_count(uid)}), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@require_permission("notification:read")
def mark_read(notification_id):
    uid, err = _caller()
    if err:
        return err
    notif = NotificationService.mark_read(notification_id, recipient_uid=uid)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_permission("notification:read")
def mark_all_read():
    uid, err = _caller()
    if err:
        return err
    count = NotificationService.mark_all_read(uid)
    return jsonify({"marked_read": count}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  PUSH
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications/device-tokens", methods=["POST"])
@require_permission("notification:read")
def register_device_token():
    uid, err = _caller()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        device = NotificationService.register_device_token(uid, data.get("token"), data.get("platform"))
    except ValidationError as e:
        return api_error(E.VALIDATION_REQUIRED, str(e))
    return jsonify(device.to_dict()), 201


@notification_bp.route("/notifications/send", methods=["POST"])
@require_permission("notification:send")
def send_notification():
    """
    Store and push a notification to one or more users.

    Body:
        {"recipient_uids": [...], "title": "...", "body": "...",
         "category"?: "...", "severity"?: "...", "link"?: "..."}
    """
    uid, err = _caller()
    if err:
        return err
    data = request.get_json(silent=True) or {}

    category = data.get("category", "system")
    if category not in NOTIFICATION_CATEGORIES:
        return api_error(E.VALIDATION_INVALID, f"category must be one of {sorted(NOTIFICATION_CATEGORIES)}")
    severity = data.get("severity", "info")
    if severity not in NOTIFICATION_SEVERITIES:
        return api_error(E.VALIDATION_INVALID, f"severity must be one of {sorted(NOTIFICATION_SEVERITIES)}")

    try:
        result = NotificationService.send_push(
            sender_uid=uid,
            recipient_uids=data.get("recipient_uids"),
            title=str(data.get("title") or "").strip(),
            body=str(data.get("body") or "").strip(),
            category=category,
            severity=severity,
            link=data.get("link", ""),
        )
    except RateLimitExceeded as e:
        logger.warning("Push quota exhausted for %s", uid)
        response, status = api_error(
            E.RATE_LIMITED, "Too many notifications sent, try again later",
            details={"retry_after": math.ceil(e.retry_after)},
        )
        response.headers["Retry-After"] = str(math.ceil(e.retry_after))
        return response, status
    except ValidationError as e:
        return api_error(E.VALIDATION_REQUIRED, str(e))

    return jsonify({
        "success": True,
        "notifications": [n.to_dict() for n in result["notifications"]],
        "delivered": result["delivered"],
        "failed_tokens": result["failed_tokens"],
    }), 201
