"""Support domain change-feed catalog."""

from __future__ import annotations

SUPPORT_SESSION_TABLE = "support_session"
SUPPORT_MESSAGE_TABLE = "support_message"

SESSION_STATUS_ACTIVE = "active"
SESSION_STATUS_CLOSED = "closed"

MSG_TYPE_TEXT = "text"
MSG_TYPE_IMAGE = "image"
MSG_TYPES = (MSG_TYPE_TEXT, MSG_TYPE_IMAGE)

EVENT_CATALOG = {
    SUPPORT_MESSAGE_TABLE: {
        "version": "v1",
        "filter": "session_id",
        "payload": {
            "id": "int",
            "session_id": "int",
            "sender_id": "int",
            "content": "str",
            "msg_type": "str",
            "is_read": "bool",
            "created_at": "datetime",
        },
    },
}
