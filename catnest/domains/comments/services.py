"""Comment service: threads, replies and likes."""

from __future__ import annotations

import logging
from typing import List, Optional, Set, Tuple

from catnest.core.realtime.change_feed import publish_insert
from catnest.core.users.models import User
from catnest.domains.comments.events import COMMENT_TABLE, REPLY_PREVIEW_CHARS
from catnest.domains.comments.mappers import comment_to_record
from catnest.domains.comments.models import Comment, CommentLike
from catnest.domains.notifications.events import NOTIFICATION_TYPE_COMMENT_REPLY
from catnest.domains.notifications.services import create_notification
from catnest.extensions import db

logger = logging.getLogger(__name__)


def list_comments(cat_id: str) -> List[Comment]:
    """All comments on a cat, oldest first (replies are threaded client-side)."""
    return (
        Comment.query.filter_by(cat_id=cat_id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )


def liked_comment_ids(user_id: int, comment_ids: List[int]) -> Set[int]:
    if not comment_ids:
        return set()
    rows = CommentLike.query.filter(
        CommentLike.user_id == user_id,
        CommentLike.comment_id.in_(comment_ids),
    ).all()
    return {row.comment_id for row in rows}


def create_comment(cat_id: str, author: User, content: str, parent_id: Optional[int] = None) -> Comment:
    """
    Post a comment; a reply notifies the parent's author.

    The notification is best-effort and never fails the comment itself.
    """
    content = (content or "").strip()
    if not content:
        raise ValueError("invalid_content")

    parent = None
    if parent_id is not None:
        parent = db.session.get(Comment, parent_id)
        if parent is None or parent.cat_id != cat_id:
            raise ValueError("parent_not_found")

    comment = Comment(
        cat_id=cat_id,
        parent_id=parent_id,
        user_id=author.id,
        nickname=author.nickname,
        avatar_url=author.avatar_url,
        content=content,
        is_ai_reply=False,
        like_count=0,
    )
    db.session.add(comment)
    db.session.commit()

    publish_insert(COMMENT_TABLE, comment_to_record(comment))

    if parent is not None and parent.user_id and parent.user_id != author.id:
        snippet = content[:REPLY_PREVIEW_CHARS] + ("..." if len(content) > REPLY_PREVIEW_CHARS else "")
        try:
            create_notification(
                user_id=parent.user_id,
                type_=NOTIFICATION_TYPE_COMMENT_REPLY,
                title="New reply to your comment",
                content=f"{author.nickname} replied: {snippet}",
                related_id=str(comment.id),
                related_type="comment",
            )
        except Exception:
            db.session.rollback()
            logger.exception("Failed to create reply notification for comment %s", comment.id)
    return comment


def toggle_like(comment_id: int, user_id: int) -> Tuple[Comment, bool]:
    """Flip the user's like; returns the comment and whether it is now liked."""
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise ValueError("not_found")

    existing = db.session.get(CommentLike, (comment_id, user_id))
    if existing:
        db.session.delete(existing)
        comment.like_count = max((comment.like_count or 0) - 1, 0)
        liked = False
    else:
        db.session.add(CommentLike(comment_id=comment_id, user_id=user_id))
        comment.like_count = (comment.like_count or 0) + 1
        liked = True
    db.session.commit()
    return comment, liked
