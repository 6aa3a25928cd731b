"""Server-Sent Events transport for the backend change feed."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from catnest.sync.adapter import (
    FEED_CHANNEL_ERROR,
    FEED_SUBSCRIBED,
    FEED_TIMED_OUT,
    FeedStatusCallback,
    InsertCallback,
)

logger = logging.getLogger(__name__)

REALTIME_PATH = "/api/v1/realtime"


class _Channel:
    def __init__(
        self,
        feed: "SSEChangeFeed",
        table: str,
        column: str,
        value: str,
        on_insert: InsertCallback,
        on_status: FeedStatusCallback,
    ) -> None:
        self.feed = feed
        self.table = table
        self.params = {"column": column, "value": value}
        self.on_insert = on_insert
        self.on_status = on_status
        self.stopped = threading.Event()
        self._response: Optional[requests.Response] = None
        self.thread = threading.Thread(
            target=self.run,
            name=f"sse-{table}-{value}",
            daemon=True,
        )

    def run(self) -> None:
        while not self.stopped.is_set():
            try:
                self._listen()
                if self.stopped.is_set():
                    break
                logger.info("SSE stream for %s ended; reconnecting", self.table)
                self.on_status(FEED_CHANNEL_ERROR)
            except requests.Timeout as exc:
                if self.stopped.is_set():
                    break
                logger.warning("SSE stream for %s timed out: %s", self.table, exc)
                self.on_status(FEED_TIMED_OUT)
            except requests.RequestException as exc:
                if self.stopped.is_set():
                    break
                logger.warning("SSE stream for %s failed: %s", self.table, exc)
                self.on_status(FEED_CHANNEL_ERROR)
            self.stopped.wait(self.feed.reconnect_seconds)

    def _listen(self) -> None:
        url = f"{self.feed.base_url}{REALTIME_PATH}/{self.table}"
        response = self.feed.session.get(
            url,
            params=self.params,
            headers=self.feed.headers(),
            stream=True,
            timeout=(self.feed.connect_timeout, self.feed.read_timeout),
        )
        self._response = response
        try:
            response.raise_for_status()
            self.on_status(FEED_SUBSCRIBED)
            data_lines: List[str] = []
            for line in response.iter_lines(decode_unicode=True):
                if self.stopped.is_set():
                    return
                if line is None:
                    continue
                if line == "":
                    if data_lines:
                        self._dispatch("\n".join(data_lines))
                        data_lines = []
                    continue
                if line.startswith(":"):
                    continue
                if line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
        finally:
            self._response = None
            response.close()

    def _dispatch(self, data: str) -> None:
        try:
            message = json.loads(data)
        except ValueError:
            logger.warning("Dropping undecodable SSE payload on %s", self.table)
            return
        record = message.get("new") if isinstance(message, dict) else None
        if record is None:
            logger.warning("Dropping SSE event without a row on %s", self.table)
            return
        self.on_insert(record)

    def close(self, join_timeout: float = 1.0) -> None:
        self.stopped.set()
        response = self._response
        if response is not None:
            response.close()
        if self.thread is not threading.current_thread():
            self.thread.join(join_timeout)


class SSEChangeFeed:
    """Reads ``event: insert`` frames from the realtime endpoint in a daemon thread.

    Each subscription owns one streaming request. A dropped or failed stream is
    reported as ``CHANNEL_ERROR`` (``TIMED_OUT`` for read timeouts) and retried
    after ``reconnect_seconds``.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        reconnect_seconds: float = 3.0,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.session = session or requests.Session()
        self.reconnect_seconds = reconnect_seconds
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def subscribe(self, table, column, value, on_insert, on_status) -> Any:
        channel = _Channel(self, table, column, value, on_insert, on_status)
        channel.thread.start()
        return channel

    def unsubscribe(self, handle: _Channel) -> None:
        handle.close()
