"""Support chat service: sessions, messages and read state."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from catnest.core.realtime.change_feed import publish_insert
from catnest.core.users.models import User
from catnest.core.utils.clock import utcnow
from catnest.domains.notifications.events import NOTIFICATION_TYPE_SUPPORT_REPLY
from catnest.domains.notifications.services import create_notification
from catnest.domains.support.events import (
    MSG_TYPES,
    SESSION_STATUS_ACTIVE,
    SUPPORT_MESSAGE_TABLE,
)
from catnest.domains.support.mappers import message_to_record
from catnest.domains.support.models import SupportMessage, SupportSession
from catnest.extensions import db

logger = logging.getLogger(__name__)

REPLY_PREVIEW_CHARS = 80


def get_or_create_active_session(user_id: int) -> Tuple[SupportSession, bool]:
    """Return the user's active session, opening one if none exists."""
    existing = (
        SupportSession.query.filter_by(user_id=user_id, status=SESSION_STATUS_ACTIVE)
        .order_by(SupportSession.created_at.desc())
        .first()
    )
    if existing:
        return existing, False

    session = SupportSession(user_id=user_id, status=SESSION_STATUS_ACTIVE, unread_count=0)
    db.session.add(session)
    db.session.commit()
    logger.info("Opened support session %s for user %s", session.id, user_id)
    return session, True


def list_sessions(user_id: int, include_all: bool = False, limit: Optional[int] = None) -> List[SupportSession]:
    query = SupportSession.query
    if not include_all:
        query = query.filter_by(user_id=user_id)
    query = query.order_by(SupportSession.last_message_at.desc(), SupportSession.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_session_for_user(user_id: int, session_id: int, admin: bool = False) -> Optional[SupportSession]:
    """Session visible to ``user_id``: its owner, or anyone when ``admin``."""
    session = db.session.get(SupportSession, session_id)
    if session is None:
        return None
    if admin or session.user_id == user_id:
        return session
    return None


def list_messages(session_id: int, limit: int = 50) -> List[SupportMessage]:
    """Most recent ``limit`` messages, oldest first."""
    recent = (
        SupportMessage.query.filter_by(session_id=session_id)
        .order_by(SupportMessage.created_at.desc(), SupportMessage.id.desc())
        .limit(limit)
        .all()
    )
    recent.reverse()
    return recent


def send_message(
    session: SupportSession,
    sender_id: int,
    content: str,
    msg_type: str = "text",
) -> SupportMessage:
    """
    Persist a message and publish it on the change feed.

    A reply from someone other than the session owner (support staff) also
    notifies the owner.
    """
    content = (content or "").strip()
    if not content:
        raise ValueError("invalid_content")
    if msg_type not in MSG_TYPES:
        raise ValueError("invalid_msg_type")
    if session.status != SESSION_STATUS_ACTIVE:
        raise ValueError("session_closed")

    message = SupportMessage(
        session_id=session.id,
        sender_id=sender_id,
        content=content,
        msg_type=msg_type,
        is_read=False,
    )
    db.session.add(message)
    session.last_message_at = utcnow()
    session.unread_count = (session.unread_count or 0) + 1
    db.session.commit()

    record = message_to_record(message)
    publish_insert(SUPPORT_MESSAGE_TABLE, record)

    if sender_id != session.user_id:
        sender = db.session.get(User, sender_id)
        preview = content if msg_type == "text" else "[image]"
        create_notification(
            user_id=session.user_id,
            type_=NOTIFICATION_TYPE_SUPPORT_REPLY,
            title=f"{sender.nickname if sender else 'Support'} replied",
            content=preview[:REPLY_PREVIEW_CHARS],
            related_id=str(session.id),
            related_type="support_session",
        )
    return message


def mark_session_read(session: SupportSession, reader_id: int) -> int:
    """Zero the session counter and mark messages from the other side read."""
    updated = (
        SupportMessage.query.filter(
            SupportMessage.session_id == session.id,
            SupportMessage.sender_id != reader_id,
            SupportMessage.is_read.is_(False),
        ).update({"is_read": True}, synchronize_session=False)
    )
    session.unread_count = 0
    db.session.commit()
    return updated
