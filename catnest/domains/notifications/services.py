"""Notification service: fan-out, listing and read state."""

from __future__ import annotations

import logging
from typing import List, Optional

from catnest.core.realtime.change_feed import publish_insert
from catnest.domains.notifications.events import NOTIFICATION_TABLE, NOTIFICATION_TYPES
from catnest.domains.notifications.models import Notification
from catnest.domains.notifications.schemas import notification_to_record
from catnest.extensions import db

logger = logging.getLogger(__name__)


def create_notification(
    user_id: int,
    type_: str,
    title: str,
    content: Optional[str] = None,
    related_id: Optional[str] = None,
    related_type: Optional[str] = None,
) -> Notification:
    """Persist a notification and push it to the recipient's feed."""
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError("invalid_notification_type")
    title = (title or "").strip()
    if not title:
        raise ValueError("invalid_title")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title[:255],
        content=content,
        related_id=related_id,
        related_type=related_type,
        is_read=False,
    )
    db.session.add(notification)
    db.session.commit()

    publish_insert(NOTIFICATION_TABLE, notification_to_record(notification))
    logger.info("Notification %s (%s) created for user %s", notification.id, type_, user_id)
    return notification


def list_notifications(user_id: int, limit: int = 50) -> List[Notification]:
    """Newest first."""
    return (
        Notification.query.filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def mark_read(user_id: int, notification_id: int) -> bool:
    """Mark one notification read; returns False when it does not belong to the user."""
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        return False
    if not notification.is_read:
        notification.is_read = True
        db.session.commit()
    return True


def mark_all_read(user_id: int) -> int:
    updated = (
        Notification.query.filter_by(user_id=user_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
