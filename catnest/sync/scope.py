"""One open logical stream: adapter, poller, tracker and reconciler behind one queue."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional

from catnest.sync.adapter import ChangeFeed, StreamAdapter
from catnest.sync.config import SyncConfig
from catnest.sync.errors import MalformedRecordError, PersistentPollFailure, SyncError, WriteRejectedError
from catnest.sync.items import (
    Arrival,
    ConnectionStatus,
    PushArrival,
    ReadStateArrival,
    StreamItem,
    StreamKind,
)
from catnest.sync.optimistic import (
    MutationKind,
    OptimisticEntry,
    OptimisticMutationTracker,
    create_preview,
    mark_read_preview,
    toggle_favorite_preview,
    toggle_like_preview,
)
from catnest.sync.poller import FetchAll, PollFallbackScheduler
from catnest.sync.reconciler import Listener, Reconciler, ReconcilerState, ViewSnapshot

logger = logging.getLogger(__name__)

_STOP = object()

# Values shown by the connection indicator.
INDICATOR_LIVE = "live"
INDICATOR_CONNECTING = "connecting"
INDICATOR_DEGRADED = "degraded"
INDICATOR_OFFLINE = "offline"

_INDICATORS = {
    ConnectionStatus.LIVE: INDICATOR_LIVE,
    ConnectionStatus.CONNECTING: INDICATOR_CONNECTING,
    ConnectionStatus.DEGRADED: INDICATOR_DEGRADED,
    ConnectionStatus.CLOSED: INDICATOR_OFFLINE,
}


@dataclass
class StreamWriter:
    """Backend write calls for one stream; any of them may be absent."""

    create: Optional[Callable[[Mapping[str, Any]], Mapping[str, Any]]] = None
    toggle_like: Optional[Callable[[str], Optional[Mapping[str, Any]]]] = None
    toggle_favorite: Optional[Callable[[str], Optional[Mapping[str, Any]]]] = None
    mark_read: Optional[Callable[[str], Any]] = None
    mark_all_read: Optional[Callable[[], Any]] = None


ErrorSink = Callable[[SyncError], None]


class SyncScope:
    """Owns every moving part of one logical stream.

    Push callbacks, poll ticks and write echoes are all enqueued with the
    generation they were started under; one consumer drains the queue into the
    reconciler. Closing bumps the generation so that callbacks still in
    flight from the push channel or the poller are dropped instead of merged.

    With ``config.threaded`` the consumer is a daemon thread. Otherwise each
    submit drains the queue on the calling thread, guarded so only one caller
    drains at a time.
    """

    def __init__(
        self,
        kind: StreamKind,
        scope_id: str,
        fetch_all: FetchAll,
        feed: Optional[ChangeFeed] = None,
        writer: Optional[StreamWriter] = None,
        local_user_id: Optional[str] = None,
        config: Optional[SyncConfig] = None,
        on_error: Optional[ErrorSink] = None,
        on_status_change: Optional[Callable[[ConnectionStatus], None]] = None,
    ) -> None:
        self.kind = kind
        self.scope_id = str(scope_id)
        self.config = config or SyncConfig.from_env()
        self.writer = writer or StreamWriter()
        self._fetch_all = fetch_all
        self._on_error = on_error
        self._on_status_change = on_status_change

        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._drain_lock = threading.Lock()
        self._lifecycle = threading.Lock()
        self._consumer: Optional[threading.Thread] = None
        self._generation = 1
        self._opened = False
        self._closed = False

        self.reconciler = Reconciler(kind, self.scope_id, local_user_id=local_user_id)
        self.tracker = OptimisticMutationTracker(
            self.reconciler,
            submit=self._submitter(self._generation),
            on_error=self._report,
            match_tolerance_seconds=self.config.match_tolerance_seconds,
        )
        self.adapter: Optional[StreamAdapter] = None
        if feed is not None:
            self.adapter = StreamAdapter(
                feed,
                kind,
                on_arrival=self._push_callback(self._generation),
                on_status_change=self._handle_status,
            )
        self.scheduler = PollFallbackScheduler(
            deliver=self._submitter(self._generation),
            status_provider=self._push_status,
            failure_alert_after=self.config.poll_failure_alert_after,
            on_persistent_failure=self._report,
        )

    # ---- lifecycle ----

    def open(self) -> "SyncScope":
        with self._lifecycle:
            if self._opened:
                raise RuntimeError(f"{self.kind.name} scope {self.scope_id} already opened")
            self._opened = True
            self.reconciler.begin_subscribe()
            if self.config.threaded:
                self._consumer = threading.Thread(
                    target=self._consume,
                    name=f"sync-{self.kind.name}-{self.scope_id}",
                    daemon=True,
                )
                self._consumer.start()

        if self.adapter is not None:
            self.adapter.subscribe(self.scope_id)
        self.scheduler.start(self.scope_id, self.config.poll_interval_ms, self._fetch_all)
        # Initial load; the scheduler keeps retrying if it fails.
        self.scheduler.tick(force=True)
        logger.info("Opened %s scope %s", self.kind.name, self.scope_id)
        return self

    def close(self) -> None:
        with self._lifecycle:
            if self._closed:
                return
            self._closed = True
            self._generation += 1
            consumer, self._consumer = self._consumer, None

        self.scheduler.stop()
        if self.adapter is not None and self.adapter.is_subscribed:
            self.adapter.unsubscribe()
        if consumer is not None:
            self._queue.put(_STOP)
            if consumer is not threading.current_thread():
                consumer.join(1.0)
        self.reconciler.tear_down()
        logger.info("Closed %s scope %s", self.kind.name, self.scope_id)

    def __enter__(self) -> "SyncScope":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def generation(self) -> int:
        return self._generation

    # ---- reads ----

    @property
    def view(self) -> List[StreamItem]:
        return self.reconciler.get_view()

    def snapshot(self) -> ViewSnapshot:
        return self.reconciler.snapshot()

    @property
    def unread_count(self) -> int:
        return self.reconciler.unread_count

    @property
    def state(self) -> ReconcilerState:
        return self.reconciler.state

    @property
    def status(self) -> Optional[ConnectionStatus]:
        return self._push_status()

    @property
    def connection_indicator(self) -> str:
        if self._closed:
            return INDICATOR_OFFLINE
        status = self._push_status()
        if status is None:
            # Poll-only scopes are as good as their last successful fetch.
            if self.scheduler.consecutive_failures:
                return INDICATOR_DEGRADED
            return INDICATOR_CONNECTING if self.scheduler.last_fetch_at is None else INDICATOR_LIVE
        return _INDICATORS[status]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.reconciler.subscribe(listener)

    # ---- UI operations ----

    def send_optimistic(self, payload: Mapping[str, Any]) -> OptimisticEntry:
        """Show a new item at once, then write it; the echo replaces the preview."""
        self._ensure_open()
        if self.writer.create is None:
            raise RuntimeError(f"{self.kind.name} stream is read-only")
        preview = create_preview(
            self.kind,
            self.scope_id,
            self.reconciler.local_user_id,
            payload,
        )
        local_id = self.tracker.apply_optimistic(MutationKind.CREATE, preview)
        try:
            record = self.writer.create(payload)
        except Exception as exc:
            return self.tracker.fail(local_id, exc)
        return self._confirm(local_id, record)

    def toggle_like(self, item_id: str) -> OptimisticEntry:
        return self._toggle(MutationKind.TOGGLE_LIKE, item_id, toggle_like_preview, self.writer.toggle_like)

    def toggle_favorite(self, item_id: str) -> OptimisticEntry:
        return self._toggle(
            MutationKind.TOGGLE_FAVORITE,
            item_id,
            toggle_favorite_preview,
            self.writer.toggle_favorite,
        )

    def mark_read(self, item_id: Optional[str] = None) -> bool:
        """Mark one item read (or all of them when ``item_id`` is None)."""
        if self._closed:
            return False
        if item_id is None:
            return self.mark_all_read()
        item = self.reconciler.get_item(str(item_id))
        if item is None or item.read:
            return False
        if self.writer.mark_read is None:
            return self.reconciler.mark_read(item.id)
        entry = self._toggle(MutationKind.MARK_READ, item.id, mark_read_preview, self.writer.mark_read)
        return entry.error is None

    def mark_all_read(self) -> bool:
        if self._closed:
            return False
        if self.writer.mark_all_read is not None:
            try:
                self.writer.mark_all_read()
            except Exception as exc:
                logger.warning("Mark-all-read failed for %s %s: %s", self.kind.name, self.scope_id, exc)
                self._report(exc if isinstance(exc, SyncError) else WriteRejectedError(str(exc)))
                return False
        self._submit(self._generation, ReadStateArrival(item_ids=None))
        return True

    def refresh_now(self) -> bool:
        """Poll immediately, whatever the push status."""
        if self._closed:
            return False
        return self.scheduler.tick(force=True)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued arrival has been merged."""
        if not self.config.threaded:
            self._drain()
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    # ---- internals ----

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"{self.kind.name} scope {self.scope_id} is closed")

    def _toggle(self, kind, item_id, build_preview, write) -> OptimisticEntry:
        self._ensure_open()
        if write is None:
            raise RuntimeError(f"{self.kind.name} stream does not support {kind.value}")
        item = self.reconciler.get_item(str(item_id))
        if item is None:
            raise ValueError("unknown_item")
        local_id = self.tracker.apply_optimistic(kind, build_preview(item))
        try:
            record = write(item.id)
        except Exception as exc:
            return self.tracker.fail(local_id, exc)
        if not isinstance(record, Mapping):
            record = None
        return self._confirm(local_id, record)

    def _confirm(self, local_id: str, record: Optional[Mapping[str, Any]]) -> OptimisticEntry:
        try:
            return self.tracker.confirm(local_id, record)
        except MalformedRecordError as exc:
            logger.warning("Write echo for %s was malformed: %s", local_id, exc)
            return self.tracker.fail(local_id, exc)

    def _push_status(self) -> Optional[ConnectionStatus]:
        return self.adapter.status if self.adapter is not None else None

    def _handle_status(self, status: ConnectionStatus) -> None:
        if self._closed:
            return
        if status is ConnectionStatus.LIVE and self.scheduler.running:
            # Polls are skipped while live, so fetch whatever landed while the channel was down.
            self.scheduler.tick(force=True)
        if self._on_status_change is not None:
            self._on_status_change(status)

    def _report(self, error: SyncError) -> None:
        if isinstance(error, PersistentPollFailure):
            logger.error("%s %s: %s", self.kind.name, self.scope_id, error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("Error sink failed for %s %s", self.kind.name, self.scope_id)

    def _submitter(self, generation: int) -> Callable[[Arrival], None]:
        def _submit(arrival: Arrival) -> None:
            self._submit(generation, arrival)

        return _submit

    def _push_callback(self, generation: int) -> Callable[[Mapping[str, Any]], None]:
        def _on_push(record: Mapping[str, Any]) -> None:
            self._submit(generation, PushArrival(records=(record,)))

        return _on_push

    def _submit(self, generation: int, arrival: Arrival) -> None:
        if generation != self._generation or self._closed:
            logger.debug("Dropping stale %s for %s %s", type(arrival).__name__, self.kind.name, self.scope_id)
            return
        self._queue.put((generation, arrival))
        if not self.config.threaded:
            self._drain()

    def _consume(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                self._process(*entry)
            finally:
                self._queue.task_done()

    def _drain(self) -> None:
        while not self._queue.empty():
            if not self._drain_lock.acquire(blocking=False):
                # Another caller is draining and will pick up our entry.
                return
            try:
                while True:
                    try:
                        entry = self._queue.get_nowait()
                    except queue.Empty:
                        break
                    try:
                        if entry is not _STOP:
                            self._process(*entry)
                    finally:
                        self._queue.task_done()
            finally:
                self._drain_lock.release()

    def _process(self, generation: int, arrival: Arrival) -> None:
        if generation != self._generation:
            return
        try:
            self.reconciler.apply(arrival)
        except Exception:
            logger.exception("Failed to merge %s into %s %s", type(arrival).__name__, self.kind.name, self.scope_id)
