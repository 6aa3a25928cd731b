"""Notification model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from catnest.core.utils.clock import utcnow
from catnest.domains.notifications.events import NOTIFICATION_TABLE
from catnest.extensions import db


class Notification(db.Model):
    __tablename__ = NOTIFICATION_TABLE
    __table_args__ = (
        db.Index("ix_notification_user_created_at", "user_id", "created_at"),
        db.Index("ix_notification_user_is_read", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    type: Mapped[str] = mapped_column(db.String(32), nullable=False)
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(db.Text)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False)
    related_id: Mapped[str | None] = mapped_column(db.String(64))
    related_type: Mapped[str | None] = mapped_column(db.String(32))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
