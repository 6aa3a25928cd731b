"""Fixed-interval poll fallback for when the push channel is not live."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, Mapping, Optional

from catnest.sync.errors import PersistentPollFailure
from catnest.sync.items import ConnectionStatus, PollArrival

logger = logging.getLogger(__name__)

FetchAll = Callable[[str], Iterable[Mapping[str, Any]]]


class PollFallbackScheduler:
    """Calls ``fetch_all(scope_id)`` every interval and forwards the result.

    A tick is skipped while the push channel reports ``live``; it runs for any
    other status, including none at all. Failures are logged and retried on
    the next tick without backoff. After ``failure_alert_after`` consecutive
    failures a single :class:`PersistentPollFailure` goes to ``on_persistent_failure``.
    """

    def __init__(
        self,
        deliver: Callable[[PollArrival], None],
        status_provider: Callable[[], Optional[ConnectionStatus]],
        failure_alert_after: int = 10,
        on_persistent_failure: Optional[Callable[[PersistentPollFailure], None]] = None,
    ) -> None:
        self._deliver = deliver
        self._status_provider = status_provider
        self.failure_alert_after = failure_alert_after
        self._on_persistent_failure = on_persistent_failure
        self._scope_id: Optional[str] = None
        self._interval: float = 0.0
        self._fetch_all: Optional[FetchAll] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._tick_lock = threading.Lock()
        self.consecutive_failures = 0
        self.last_fetch_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, scope_id: str, interval_ms: int, fetch_all: FetchAll) -> None:
        if self.running:
            raise RuntimeError("poll scheduler already started")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._scope_id = str(scope_id)
        self._interval = interval_ms / 1000.0
        self._fetch_all = fetch_all
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"poll-{self._scope_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Poll fallback started for %s every %sms", self._scope_id, interval_ms)

    def stop(self, join_timeout: float = 1.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(join_timeout)
        self._fetch_all = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Unexpected error in poll tick for %s", self._scope_id)

    def tick(self, force: bool = False) -> bool:
        """Run one fetch; returns True when records were delivered."""
        fetch_all = self._fetch_all
        if fetch_all is None:
            return False
        if not force and self._status_provider() is ConnectionStatus.LIVE:
            logger.debug("Push live for %s; skipping poll", self._scope_id)
            return False

        with self._tick_lock:
            try:
                records = tuple(fetch_all(self._scope_id))
            except Exception as exc:
                self._record_failure(exc)
                return False
            self.consecutive_failures = 0
            self.last_fetch_at = time.monotonic()
        if self._stop.is_set() and not force:
            return False
        self._deliver(PollArrival(records=records, forced=force))
        return True

    def _record_failure(self, exc: Exception) -> None:
        self.consecutive_failures += 1
        logger.warning(
            "Poll for %s failed (%s in a row): %s",
            self._scope_id,
            self.consecutive_failures,
            exc,
        )
        if self.consecutive_failures == self.failure_alert_after and self._on_persistent_failure:
            self._on_persistent_failure(
                PersistentPollFailure(
                    f"polling {self._scope_id} failed {self.consecutive_failures} times",
                    consecutive_failures=self.consecutive_failures,
                )
            )
