import json
import threading
from unittest import mock

import pytest
import requests

from catnest.sync.adapter import FEED_CHANNEL_ERROR, FEED_SUBSCRIBED
from catnest.sync.sse import SSEChangeFeed

pytestmark = pytest.mark.unit


class _StreamResponse:
    def __init__(self, lines, status_code=200):
        self.lines = lines
        self.status_code = status_code
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def iter_lines(self, decode_unicode=False):
        yield from self.lines

    def close(self):
        self.closed = True


def _frame(record):
    return f"data: {json.dumps({'table': 'support_message', 'event': 'INSERT', 'new': record})}"


def test_sse_feed_parses_insert_frames_and_reports_status():
    lines = [
        ": subscribed",
        "",
        "event: insert",
        _frame({"id": 1, "session_id": 4}),
        "",
        ": keep-alive",
        "",
        "data: {not json",
        "",
        "event: insert",
        _frame({"id": 2, "session_id": 4}),
        "",
    ]
    responses = iter([_StreamResponse(lines)])

    def _get(*args, **kwargs):
        response = next(responses, None)
        if response is None:
            raise requests.ConnectionError("gone")
        return response

    session = mock.Mock()
    session.get.side_effect = _get
    inserts, statuses = [], []
    done = threading.Event()

    def on_status(status):
        statuses.append(status)
        if status == FEED_CHANNEL_ERROR:
            done.set()

    feed = SSEChangeFeed("http://catnest.test/", access_token="tok", session=session, reconnect_seconds=0.01)
    handle = feed.subscribe("support_message", "session_id", "4", inserts.append, on_status)
    try:
        assert done.wait(2.0)
    finally:
        feed.unsubscribe(handle)

    assert inserts == [{"id": 1, "session_id": 4}, {"id": 2, "session_id": 4}]
    assert statuses[0] == FEED_SUBSCRIBED
    args, kwargs = session.get.call_args_list[0]
    assert args[0] == "http://catnest.test/api/v1/realtime/support_message"
    assert kwargs["params"] == {"column": "session_id", "value": "4"}
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["stream"] is True
    assert handle.thread.is_alive() is False


def test_sse_feed_reports_http_errors_and_retries():
    session = mock.Mock()
    attempts = threading.Event()

    def _get(*args, **kwargs):
        if session.get.call_count >= 2:
            attempts.set()
        return _StreamResponse([], status_code=403)

    session.get.side_effect = _get
    statuses = []
    feed = SSEChangeFeed("http://catnest.test", session=session, reconnect_seconds=0.01)
    handle = feed.subscribe("notification", "user_id", "9", lambda record: None, statuses.append)
    try:
        assert attempts.wait(2.0)
    finally:
        feed.unsubscribe(handle)

    assert FEED_CHANNEL_ERROR in statuses
    assert FEED_SUBSCRIBED not in statuses
