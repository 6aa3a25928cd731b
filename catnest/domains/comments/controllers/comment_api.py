"""Comment API controllers."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from pydantic import ValidationError

from catnest.core.users.models import User
from catnest.core.utils.validation import jsonable_errors
from catnest.domains.comments.mappers import comment_to_record
from catnest.domains.comments.schemas import CommentCreate
from catnest.domains.comments.services import (
    create_comment,
    liked_comment_ids,
    list_comments,
    toggle_like,
)
from catnest.extensions import db, limiter

comment_api_bp = Blueprint("comment_api", __name__)


@comment_api_bp.get("/cats/<cat_id>/comments")
@jwt_required()
@limiter.limit("600/minute")
def get_comments(cat_id: str):
    user_id = int(get_jwt_identity())
    comments = list_comments(cat_id)
    liked = liked_comment_ids(user_id, [c.id for c in comments])
    return jsonify(
        {"ok": True, "data": [comment_to_record(c, liked=c.id in liked) for c in comments]}
    ), 200


@comment_api_bp.post("/cats/<cat_id>/comments")
@jwt_required()
@limiter.limit("60/minute")
def post_comment(cat_id: str):
    user_id = int(get_jwt_identity())
    payload = request.get_json(silent=True) or {}
    try:
        data = CommentCreate.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": jsonable_errors(exc)}), 400

    author = db.session.get(User, user_id)
    if not author:
        return jsonify({"ok": False, "error": "unauthorized"}), 401

    try:
        comment = create_comment(cat_id, author, data.content, data.parent_id)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400

    return jsonify({"ok": True, "data": comment_to_record(comment, liked=False)}), 201


@comment_api_bp.post("/comments/<int:comment_id>/like")
@jwt_required()
@limiter.limit("240/minute")
def like_comment(comment_id: int):
    """Toggle the caller's like and echo the updated comment."""
    user_id = int(get_jwt_identity())
    try:
        comment, liked = toggle_like(comment_id, user_id)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404

    return jsonify({"ok": True, "data": comment_to_record(comment, liked=liked)}), 200
