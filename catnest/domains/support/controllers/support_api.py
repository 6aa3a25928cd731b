"""Support chat API controllers."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from pydantic import ValidationError

from catnest.core.utils.decorators import is_admin, require_roles
from catnest.core.utils.validation import jsonable_errors
from catnest.domains.support.mappers import message_to_record, session_to_response
from catnest.domains.support.schemas import (
    MessageListParams,
    SessionListParams,
    SupportMessageCreate,
)
from catnest.domains.support.services import (
    get_or_create_active_session,
    get_session_for_user,
    list_messages,
    list_sessions,
    mark_session_read,
    send_message,
)
from catnest.extensions import limiter

support_api_bp = Blueprint("support_api", __name__)


def _session_json(session) -> dict:
    return session_to_response(session).model_dump(mode="json")


# ==================== Sessions ====================


@support_api_bp.get("/sessions")
@jwt_required()
@limiter.limit("240/minute")
def list_own_sessions():
    """List the caller's sessions, newest activity first."""
    user_id = int(get_jwt_identity())
    try:
        params = SessionListParams.model_validate(request.args)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": jsonable_errors(exc)}), 400

    sessions = list_sessions(user_id, include_all=False, limit=params.limit)
    return jsonify({"ok": True, "data": [_session_json(s) for s in sessions]}), 200


@support_api_bp.get("/admin/sessions")
@require_roles({"admin"})
@limiter.limit("240/minute")
def list_all_sessions():
    """Support-staff inbox across all users."""
    user_id = int(get_jwt_identity())
    try:
        params = SessionListParams.model_validate(request.args)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": jsonable_errors(exc)}), 400

    sessions = list_sessions(user_id, include_all=True, limit=params.limit)
    return jsonify({"ok": True, "data": [_session_json(s) for s in sessions]}), 200


@support_api_bp.post("/sessions")
@jwt_required()
@limiter.limit("60/minute")
def open_session():
    """Get the caller's active session, creating it when missing."""
    user_id = int(get_jwt_identity())
    session, created = get_or_create_active_session(user_id)
    return jsonify({"ok": True, "data": _session_json(session), "is_new": created}), (201 if created else 200)


@support_api_bp.patch("/sessions/<int:session_id>/read")
@jwt_required()
@limiter.limit("240/minute")
def read_session(session_id: int):
    user_id = int(get_jwt_identity())
    session = get_session_for_user(user_id, session_id, admin=is_admin())
    if not session:
        return jsonify({"ok": False, "error": "not_found"}), 404

    updated = mark_session_read(session, user_id)
    return jsonify({"ok": True, "updated": updated}), 200


# ==================== Messages ====================


@support_api_bp.get("/sessions/<int:session_id>/messages")
@jwt_required()
@limiter.limit("600/minute")
def get_messages(session_id: int):
    """
    Full message list for a session, oldest first.

    Query Parameters:
    - limit: max results (default SUPPORT_MESSAGES_DEFAULT_LIMIT, max 500)
    """
    user_id = int(get_jwt_identity())
    args = dict(request.args)
    args.setdefault("limit", current_app.config.get("SUPPORT_MESSAGES_DEFAULT_LIMIT", 50))
    try:
        params = MessageListParams.model_validate(args)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": jsonable_errors(exc)}), 400

    session = get_session_for_user(user_id, session_id, admin=is_admin())
    if not session:
        return jsonify({"ok": False, "error": "not_found"}), 404

    messages = list_messages(session.id, limit=params.limit)
    return jsonify({"ok": True, "data": [message_to_record(m) for m in messages]}), 200


@support_api_bp.post("/sessions/<int:session_id>/messages")
@jwt_required()
@limiter.limit("120/minute")
def post_message(session_id: int):
    """
    Send a message; the created record is echoed back synchronously.

    Request Body:
    {"content": "Is Mochi still available?", "msg_type": "text"}
    """
    user_id = int(get_jwt_identity())
    payload = request.get_json(silent=True) or {}
    try:
        data = SupportMessageCreate.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": jsonable_errors(exc)}), 400

    session = get_session_for_user(user_id, session_id, admin=is_admin())
    if not session:
        return jsonify({"ok": False, "error": "not_found"}), 404

    try:
        message = send_message(session, user_id, data.content, data.msg_type)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400

    return jsonify({"ok": True, "data": message_to_record(message)}), 201
