"""Support chat models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from catnest.core.utils.clock import utcnow
from catnest.domains.support.events import (
    MSG_TYPE_TEXT,
    SESSION_STATUS_ACTIVE,
    SUPPORT_MESSAGE_TABLE,
    SUPPORT_SESSION_TABLE,
)
from catnest.extensions import db


class SupportSession(db.Model):
    __tablename__ = SUPPORT_SESSION_TABLE
    __table_args__ = (
        db.Index("ix_support_session_user_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default=SESSION_STATUS_ACTIVE)
    unread_count: Mapped[int] = mapped_column(nullable=False, default=0)
    last_message_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    messages: Mapped[list["SupportMessage"]] = relationship(
        "SupportMessage", back_populates="session", cascade="all, delete-orphan"
    )


class SupportMessage(db.Model):
    __tablename__ = SUPPORT_MESSAGE_TABLE
    __table_args__ = (
        db.Index("ix_support_message_session_created_at", "session_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[int] = mapped_column(db.ForeignKey(f"{SUPPORT_SESSION_TABLE}.id"), nullable=False)
    sender_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    content: Mapped[str] = mapped_column(db.Text, nullable=False)
    msg_type: Mapped[str] = mapped_column(db.String(16), nullable=False, default=MSG_TYPE_TEXT)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    session: Mapped[SupportSession] = relationship("SupportSession", back_populates="messages")
