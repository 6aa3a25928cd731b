from datetime import datetime, timedelta

import pytest

from catnest.sync.adapter import FEED_CHANNEL_ERROR, FEED_SUBSCRIBED
from catnest.sync.config import SyncConfig
from catnest.sync.errors import TransportError, WriteRejectedError
from catnest.sync.items import CHAT_MESSAGES, NOTIFICATIONS, utcnow
from catnest.sync.optimistic import Resolution
from catnest.sync.reconciler import ReconcilerState
from catnest.sync.scope import StreamWriter, SyncScope

pytestmark = pytest.mark.unit

BASE = datetime(2026, 10, 19, 8, 0, 0)


def _msg(msg_id, ms=0, sender=2):
    return {
        "id": msg_id,
        "session_id": 1,
        "sender_id": sender,
        "content": f"text {msg_id}",
        "msg_type": "text",
        "is_read": False,
        "created_at": (BASE + timedelta(milliseconds=ms)).isoformat(),
    }


class FakeServer:
    def __init__(self):
        self.rows = []
        self.fail_reads = False
        self.fail_writes = False
        self.next_id = 100

    def fetch_all(self, scope_id):
        if self.fail_reads:
            raise TransportError("offline")
        return list(self.rows)

    def create(self, payload):
        if self.fail_writes:
            raise WriteRejectedError("rate_limited", status_code=429)
        self.next_id += 1
        row = {
            "id": self.next_id,
            "session_id": 1,
            "sender_id": 1,
            "msg_type": "text",
            "is_read": False,
            "created_at": utcnow().isoformat(),
            **payload,
        }
        self.rows.append(row)
        return row


def _config(**overrides):
    values = {"poll_interval_ms": 60_000, "threaded": False, "poll_failure_alert_after": 2}
    values.update(overrides)
    return SyncConfig(**values)


def _scope(server, feed=None, kind=CHAT_MESSAGES, writer=None, **config):
    errors = []
    scope = SyncScope(
        kind,
        "1",
        server.fetch_all,
        feed=feed,
        writer=writer or StreamWriter(create=server.create),
        local_user_id="1",
        config=_config(**config),
        on_error=errors.append,
    )
    return scope, errors


def test_poll_then_push_duplicate_then_push_new(fake_feed):
    """m1 polled at 3000ms, pushed again at 3100ms, m2 pushed at 3200ms."""
    server = FakeServer()
    feed = fake_feed
    scope, _ = _scope(server, feed)
    scope.open()
    assert scope.view == []

    server.rows = [_msg("m1", 3000)]
    assert scope.scheduler.tick() is True  # push still connecting
    assert [i.id for i in scope.view] == ["m1"]

    feed.on_insert(_msg("m1", 3000))
    assert [i.id for i in scope.view] == ["m1"]

    feed.on_insert(_msg("m2", 3200))
    assert [i.id for i in scope.view] == ["m1", "m2"]
    assert scope.unread_count == 2
    scope.close()


def test_indicator_follows_push_channel(fake_feed):
    feed = fake_feed
    scope, _ = _scope(FakeServer(), feed)
    with scope:
        assert scope.connection_indicator == "connecting"
        feed.on_status(FEED_SUBSCRIBED)
        assert scope.connection_indicator == "live"
        assert scope.scheduler.tick() is False
        feed.on_status(FEED_CHANNEL_ERROR)
        assert scope.connection_indicator == "degraded"
    assert scope.connection_indicator == "offline"


def test_refresh_now_polls_even_when_live(fake_feed):
    server = FakeServer()
    feed = fake_feed
    scope, _ = _scope(server, feed)
    with scope:
        feed.on_status(FEED_SUBSCRIBED)
        server.rows = [_msg(1), _msg(2, 10)]
        assert scope.refresh_now() is True
        assert [i.id for i in scope.view] == ["1", "2"]


def test_close_releases_everything_and_drops_late_callbacks(fake_feed):
    server = FakeServer()
    feed = fake_feed
    scope, _ = _scope(server, feed)
    scope.open()
    feed.on_insert(_msg(1))
    on_insert = feed.on_insert

    scope.close()
    scope.close()
    on_insert(_msg(2))

    assert feed.released == [1]
    assert scope.state is ReconcilerState.TORN_DOWN
    assert scope.view == []
    assert scope.scheduler.running is False
    assert scope.refresh_now() is False


def test_send_optimistic_round_trip_with_push_echo(fake_feed):
    server = FakeServer()
    feed = fake_feed
    scope, _ = _scope(server, feed)

    def create_and_push(payload):
        row = server.create(payload)
        feed.on_insert(row)  # push lands before the HTTP response
        return row

    scope.writer.create = create_and_push
    with scope:
        entry = scope.send_optimistic({"content": "hello"})
        assert [i.id for i in scope.view] == [str(entry.resolved_id)]
        assert scope.view[0].pending is False
        assert scope.unread_count == 0


def test_send_optimistic_failure_rolls_back_and_reports():
    server = FakeServer()
    server.fail_writes = True
    scope, errors = _scope(server)
    with scope:
        scope.refresh_now()
        before = scope.view
        entry = scope.send_optimistic({"content": "hello"})

        assert entry.error == "rate_limited"
        assert scope.view == before
        assert isinstance(errors[0], WriteRejectedError)
        assert errors[0].local_id == entry.local_id


def test_mark_read_rollback_restores_counter():
    server = FakeServer()
    server.rows = [_msg(1), _msg(2, 10)]
    calls = []

    def mark_read(item_id):
        calls.append(item_id)
        if item_id == "2":
            raise WriteRejectedError("not_found", status_code=404)

    scope, errors = _scope(server, writer=StreamWriter(mark_read=mark_read))
    with scope:
        assert scope.unread_count == 2
        assert scope.mark_read("1") is True
        assert scope.unread_count == 1
        assert scope.mark_read("1") is False
        assert scope.mark_read("2") is False
        assert scope.unread_count == 1
        assert scope.reconciler.get_item("2").read is False
        assert calls == ["1", "2"]
        assert len(errors) == 1


def test_mark_all_read_goes_through_queue_after_write():
    server = FakeServer()
    server.rows = [_msg(1), _msg(2, 10)]
    writes = []
    scope, _ = _scope(server, writer=StreamWriter(mark_all_read=lambda: writes.append("all")))
    with scope:
        assert scope.mark_read() is True
        assert writes == ["all"]
        assert scope.unread_count == 0


def test_persistent_poll_failure_is_surfaced_once():
    server = FakeServer()
    server.fail_reads = True
    scope, errors = _scope(server, kind=NOTIFICATIONS)
    with scope:
        for _ in range(4):
            scope.scheduler.tick()
        assert scope.connection_indicator == "degraded"
    assert [type(e).__name__ for e in errors] == ["PersistentPollFailure"]


def test_threaded_consumer_merges_in_background(fake_feed):
    server = FakeServer()
    server.rows = [_msg(1)]
    feed = fake_feed
    scope, _ = _scope(server, feed, threaded=True)
    with scope:
        feed.on_insert(_msg(2, 5))
        assert scope.flush(timeout=2.0) is True
        assert [i.id for i in scope.view] == ["1", "2"]


def test_reconnect_fetches_rows_missed_while_channel_was_down(fake_feed):
    server = FakeServer()
    feed = fake_feed
    scope, _ = _scope(server, feed)
    with scope:
        feed.on_status(FEED_SUBSCRIBED)
        feed.on_status(FEED_CHANNEL_ERROR)
        server.rows = [_msg("m1", 3000)]  # committed while nobody was listening

        feed.on_status(FEED_SUBSCRIBED)
        assert [i.id for i in scope.view] == ["m1"]
        assert scope.scheduler.tick() is False


def test_closed_scope_refuses_writes(fake_feed):
    server = FakeServer()
    server.rows = [_msg(1)]
    writes = []
    writer = StreamWriter(
        create=server.create,
        mark_read=writes.append,
        mark_all_read=lambda: writes.append("all"),
    )
    scope, _ = _scope(server, fake_feed, writer=writer)
    scope.open()
    scope.close()

    with pytest.raises(RuntimeError, match="closed"):
        scope.send_optimistic({"content": "late"})
    with pytest.raises(RuntimeError, match="closed"):
        scope.toggle_like("1")
    assert scope.mark_read("1") is False
    assert scope.mark_all_read() is False
    assert server.rows == [_msg(1)]
    assert writes == []


def test_toggle_without_backend_write_is_refused():
    server = FakeServer()
    server.rows = [_msg(1)]
    scope, _ = _scope(server)
    with scope:
        with pytest.raises(RuntimeError, match="does not support toggle_favorite"):
            scope.toggle_favorite("1")
        assert "favorited" not in scope.reconciler.get_item("1").payload
        assert scope.tracker.pending() == []


def test_malformed_write_echo_rolls_back_preview():
    server = FakeServer()
    scope, errors = _scope(server, writer=StreamWriter(create=lambda payload: {"id": 7}))
    with scope:
        entry = scope.send_optimistic({"content": "hello"})

        assert entry.resolution is Resolution.FAILED
        assert scope.view == []
        assert scope.tracker.pending() == []
        assert isinstance(errors[0], WriteRejectedError)
