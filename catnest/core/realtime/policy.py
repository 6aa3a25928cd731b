"""Who may subscribe to which filtered change feed."""

from __future__ import annotations

from typing import Tuple

from catnest.core.utils.decorators import is_admin
from catnest.domains.comments.events import COMMENT_TABLE
from catnest.domains.notifications.events import NOTIFICATION_TABLE
from catnest.domains.support.events import SUPPORT_MESSAGE_TABLE

# table -> column the subscription must filter on
SUBSCRIBABLE = {
    SUPPORT_MESSAGE_TABLE: "session_id",
    NOTIFICATION_TABLE: "user_id",
    COMMENT_TABLE: "cat_id",
}


def can_subscribe(user_id: int, table: str, column: str, value: str) -> Tuple[bool, str]:
    expected_column = SUBSCRIBABLE.get(table)
    if expected_column is None:
        return False, "unknown_table"
    if column != expected_column:
        return False, "filter_not_allowed"
    if is_admin():
        return True, "ok"

    if table == NOTIFICATION_TABLE:
        return (str(user_id) == str(value)), "forbidden"
    if table == SUPPORT_MESSAGE_TABLE:
        from catnest.domains.support.services import get_session_for_user

        try:
            session_id = int(value)
        except (TypeError, ValueError):
            return False, "forbidden"
        return (get_session_for_user(user_id, session_id) is not None), "forbidden"
    return True, "ok"
