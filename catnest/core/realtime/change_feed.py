"""In-process change feed for committed row inserts."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional

from catnest.core.utils.clock import utcnow

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    record: Mapping[str, Any]
    event: str = EVENT_INSERT
    published_at: datetime = field(default_factory=utcnow)


ChangeHandler = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class _Subscription:
    table: str
    column: Optional[str]
    value: Optional[str]
    handler: ChangeHandler

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.column is None:
            return True
        return str(event.record.get(self.column)) == self.value


class ChangeFeedBus:
    """Filtered pub/sub of inserts, keyed by ``column = value`` on one table."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._ids = itertools.count(1)
        self._subscriptions: Dict[int, _Subscription] = {}

    def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        column: Optional[str] = None,
        value: Any = None,
    ) -> int:
        """Register ``handler`` for inserts on ``table``; returns a subscription id."""
        sub = _Subscription(
            table=table,
            column=column,
            value=None if column is None else str(value),
            handler=handler,
        )
        with self._lock:
            sub_id = next(self._ids)
            self._subscriptions[sub_id] = sub
        logger.debug("change feed subscribe #%s %s %s=%s", sub_id, table, column, value)
        return sub_id

    def unsubscribe(self, sub_id: int) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(sub_id, None)
        return removed is not None

    def publish_insert(self, table: str, record: Mapping[str, Any]) -> int:
        """Deliver an insert to every matching subscriber; returns deliveries made."""
        event = ChangeEvent(table=table, record=dict(record))
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(event)]
        delivered = 0
        for sub in targets:
            try:
                sub.handler(event)
                delivered += 1
            except Exception:
                # A broken subscriber must not fail the write that produced the row.
                logger.exception("Change feed handler failed for table %s", table)
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


def publish_insert(table: str, record: Mapping[str, Any]) -> int:
    """Publish through the current app's change feed (no-op outside an app)."""
    from flask import current_app, has_app_context

    if not has_app_context():
        return 0
    bus: Optional[ChangeFeedBus] = current_app.extensions.get("change_feed")
    if bus is None:
        return 0
    return bus.publish_insert(table, record)
