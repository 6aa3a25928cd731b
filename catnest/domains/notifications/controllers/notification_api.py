"""Notification API controllers."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import get_jwt_identity, jwt_required

from catnest.domains.notifications.schemas import notification_to_record
from catnest.domains.notifications.services import (
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)
from catnest.extensions import limiter

notification_api_bp = Blueprint("notification_api", __name__)


@notification_api_bp.get("")
@jwt_required()
@limiter.limit("600/minute")
def get_notifications():
    user_id = int(get_jwt_identity())
    limit = int(current_app.config.get("NOTIFICATIONS_LIST_LIMIT", 50))
    notifications = list_notifications(user_id, limit=limit)
    return jsonify({"ok": True, "data": [notification_to_record(n) for n in notifications]}), 200


@notification_api_bp.get("/unread-count")
@jwt_required()
@limiter.limit("600/minute")
def get_unread_count():
    user_id = int(get_jwt_identity())
    return jsonify({"ok": True, "data": {"count": unread_count(user_id)}}), 200


@notification_api_bp.post("/<int:notification_id>/read")
@jwt_required()
@limiter.limit("240/minute")
def read_one(notification_id: int):
    user_id = int(get_jwt_identity())
    if not mark_read(user_id, notification_id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True}), 200


@notification_api_bp.post("/read-all")
@jwt_required()
@limiter.limit("60/minute")
def read_all():
    user_id = int(get_jwt_identity())
    updated = mark_all_read(user_id)
    return jsonify({"ok": True, "updated": updated}), 200
