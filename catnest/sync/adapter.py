"""Push-channel adapter: filtered insert subscriptions and connection status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Mapping, Optional, Protocol

from catnest.core.realtime.change_feed import ChangeEvent, ChangeFeedBus
from catnest.sync.items import ConnectionStatus, StreamKind

logger = logging.getLogger(__name__)

# Raw channel states reported by a feed transport.
FEED_SUBSCRIBED = "SUBSCRIBED"
FEED_CHANNEL_ERROR = "CHANNEL_ERROR"
FEED_TIMED_OUT = "TIMED_OUT"
FEED_CLOSED = "CLOSED"

_STATUS_MAP = {
    FEED_SUBSCRIBED: ConnectionStatus.LIVE,
    FEED_CHANNEL_ERROR: ConnectionStatus.DEGRADED,
    FEED_TIMED_OUT: ConnectionStatus.DEGRADED,
    FEED_CLOSED: ConnectionStatus.CLOSED,
}

InsertCallback = Callable[[Mapping[str, Any]], None]
FeedStatusCallback = Callable[[str], None]


class ChangeFeed(Protocol):
    """Transport delivering ``INSERT`` rows where ``column = value``."""

    def subscribe(
        self,
        table: str,
        column: str,
        value: str,
        on_insert: InsertCallback,
        on_status: FeedStatusCallback,
    ) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


class BusChangeFeed:
    """Feed backed directly by an in-process :class:`ChangeFeedBus`."""

    def __init__(self, bus: ChangeFeedBus) -> None:
        self.bus = bus

    def subscribe(self, table, column, value, on_insert, on_status):
        def _deliver(event: ChangeEvent) -> None:
            on_insert(event.record)

        sub_id = self.bus.subscribe(table, _deliver, column=column, value=value)
        on_status(FEED_SUBSCRIBED)
        return sub_id

    def unsubscribe(self, handle) -> None:
        self.bus.unsubscribe(handle)


@dataclass
class Subscription:
    """Handle for one open push subscription."""

    adapter: "StreamAdapter"
    scope_id: str

    @property
    def active(self) -> bool:
        return self.adapter.is_subscribed

    def unsubscribe(self) -> bool:
        return self.adapter.unsubscribe()


class StreamAdapter:
    """Wraps a :class:`ChangeFeed` for one stream kind.

    Emits ``on_arrival(raw_record)`` for every pushed insert and
    ``on_status_change(status)`` whenever the mapped connection status moves.
    No ordering is promised and duplicates are passed through untouched.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        kind: StreamKind,
        on_arrival: InsertCallback,
        on_status_change: Optional[Callable[[ConnectionStatus], None]] = None,
    ) -> None:
        self.feed = feed
        self.kind = kind
        self._on_arrival = on_arrival
        self._on_status_change = on_status_change
        self._lock = Lock()
        self._handle: Any = None
        self._subscribed = False
        self._released = False
        self._status: Optional[ConnectionStatus] = None

    @property
    def status(self) -> Optional[ConnectionStatus]:
        return self._status

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed and not self._released

    def subscribe(self, scope_id: str) -> Subscription:
        with self._lock:
            if self._subscribed:
                raise RuntimeError(f"{self.kind.name} adapter already subscribed")
            self._subscribed = True
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            handle = self.feed.subscribe(
                self.kind.table,
                self.kind.parent_field,
                str(scope_id),
                self._handle_insert,
                self._handle_feed_status,
            )
        except Exception as exc:
            # Push is best-effort; polling covers the gap.
            logger.warning("Push subscribe failed for %s %s: %s", self.kind.table, scope_id, exc)
            self._set_status(ConnectionStatus.DEGRADED)
            handle = None
        with self._lock:
            self._handle = handle
        return Subscription(adapter=self, scope_id=str(scope_id))

    def unsubscribe(self) -> bool:
        """Release the channel; only the first call has any effect."""
        with self._lock:
            if self._released or not self._subscribed:
                logger.warning("Ignoring repeated unsubscribe for %s", self.kind.table)
                return False
            self._released = True
            handle, self._handle = self._handle, None
        if handle is not None:
            try:
                self.feed.unsubscribe(handle)
            except Exception:
                logger.exception("Error releasing %s channel", self.kind.table)
        self._set_status(ConnectionStatus.CLOSED, force=True)
        return True

    def _handle_insert(self, record: Mapping[str, Any]) -> None:
        if self._released:
            return
        self._on_arrival(record)

    def _handle_feed_status(self, feed_status: str) -> None:
        if self._released:
            return
        status = _STATUS_MAP.get(feed_status)
        if status is None:
            logger.debug("Unmapped feed status %s", feed_status)
            return
        self._set_status(status)

    def _set_status(self, status: ConnectionStatus, force: bool = False) -> None:
        with self._lock:
            if self._status is status:
                return
            if self._released and not force:
                return
            previous, self._status = self._status, status
        logger.info("%s channel %s -> %s", self.kind.table, getattr(previous, "value", None), status.value)
        if self._on_status_change is not None:
            self._on_status_change(status)
