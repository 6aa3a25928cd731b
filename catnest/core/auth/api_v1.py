"""API v1 authentication endpoints (device login + identity)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from pydantic import ValidationError

from catnest.core.auth.auth_service import issue_access_token, login_device
from catnest.core.users.models import User
from catnest.core.users.schemas import serialize_user
from catnest.core.utils.validation import jsonable_errors
from catnest.extensions import db, limiter

api_v1_auth_bp = Blueprint("auth_api_v1", __name__)


@api_v1_auth_bp.post("/device")
@limiter.limit("20/minute")
def device_login_v1():
    from catnest.core.auth.schemas import DeviceLoginRequest

    payload = request.get_json(silent=True) or {}
    try:
        data = DeviceLoginRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "bad_request", "details": jsonable_errors(exc)}), 400

    try:
        user, created = login_device(data.device_id, data.nickname, data.avatar_url)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 403

    return jsonify(
        {
            "ok": True,
            "access_token": issue_access_token(user),
            "is_new": created,
            "user": serialize_user(user).model_dump(mode="json"),
        }
    ), (201 if created else 200)


@api_v1_auth_bp.get("/me")
@jwt_required()
def me_v1():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user:
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True, "user": serialize_user(user).model_dump(mode="json")})
