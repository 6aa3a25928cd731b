"""Comment and like models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from catnest.core.utils.clock import utcnow
from catnest.domains.comments.events import COMMENT_LIKE_TABLE, COMMENT_TABLE
from catnest.extensions import db


class Comment(db.Model):
    __tablename__ = COMMENT_TABLE
    __table_args__ = (
        db.Index("ix_comment_cat_created_at", "cat_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    cat_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(db.ForeignKey(f"{COMMENT_TABLE}.id"), nullable=True)
    user_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"), nullable=True)
    nickname: Mapped[str] = mapped_column(db.String(64), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(db.String(512))
    content: Mapped[str] = mapped_column(db.Text, nullable=False)
    is_ai_reply: Mapped[bool] = mapped_column(nullable=False, default=False)
    like_count: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


class CommentLike(db.Model):
    __tablename__ = COMMENT_LIKE_TABLE

    comment_id: Mapped[int] = mapped_column(db.ForeignKey(f"{COMMENT_TABLE}.id"), primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
