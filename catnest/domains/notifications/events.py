"""Notification domain catalog."""

from __future__ import annotations

NOTIFICATION_TABLE = "notification"

NOTIFICATION_TYPE_SYSTEM = "system"
NOTIFICATION_TYPE_COMMENT_REPLY = "comment_reply"
NOTIFICATION_TYPE_SUPPORT_REPLY = "support_reply"
NOTIFICATION_TYPE_APPLICATION = "application"

NOTIFICATION_TYPES = (
    NOTIFICATION_TYPE_SYSTEM,
    NOTIFICATION_TYPE_COMMENT_REPLY,
    NOTIFICATION_TYPE_SUPPORT_REPLY,
    NOTIFICATION_TYPE_APPLICATION,
)
