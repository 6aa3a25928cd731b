import threading
from datetime import datetime, timedelta

import pytest

from catnest.sync.errors import InvalidStateTransition
from catnest.sync.items import (
    CHAT_MESSAGES,
    NOTIFICATIONS,
    OptimisticArrival,
    PollArrival,
    PushArrival,
    ReadStateArrival,
    parse_record,
)
from catnest.sync.reconciler import Reconciler, ReconcilerState

pytestmark = pytest.mark.unit

BASE = datetime(2026, 10, 19, 8, 0, 0)


def _msg(msg_id, seconds=0, sender=2, session=1, read=False, content=None):
    return {
        "id": msg_id,
        "session_id": session,
        "sender_id": sender,
        "content": content or f"message {msg_id}",
        "msg_type": "text",
        "is_read": read,
        "created_at": (BASE + timedelta(seconds=seconds)).isoformat(),
    }


def _notification(nid, seconds=0, read=False):
    return {
        "id": nid,
        "user_id": 1,
        "type": "system",
        "title": f"n{nid}",
        "is_read": read,
        "created_at": (BASE + timedelta(seconds=seconds)).isoformat(),
    }


def _chat(local_user="1"):
    return Reconciler(CHAT_MESSAGES, "1", local_user_id=local_user)


def test_duplicate_arrivals_are_silent_noops():
    rec = _chat()
    assert rec.apply(PollArrival(records=(_msg(1), _msg(2, 1)))) == 2
    assert rec.apply(PushArrival(records=(_msg(1),))) == 0
    assert rec.apply(PollArrival(records=(_msg(1), _msg(2, 1)))) == 0

    assert [i.id for i in rec.get_view()] == ["1", "2"]


def test_view_sorted_by_created_at_regardless_of_arrival_order():
    rec = _chat()
    rec.apply(PushArrival(records=(_msg(3, 30),)))
    rec.apply(PushArrival(records=(_msg(1, 10),)))
    rec.apply(PollArrival(records=(_msg(2, 20), _msg(4, 5))))

    assert [i.id for i in rec.get_view()] == ["4", "1", "2", "3"]


def test_equal_timestamps_tie_break_on_id():
    rec = _chat()
    rec.apply(PushArrival(records=(_msg("b", 0), _msg("a", 0))))
    assert [i.id for i in rec.get_view()] == ["a", "b"]


def test_notifications_are_newest_first():
    rec = Reconciler(NOTIFICATIONS, "1", local_user_id="1")
    rec.apply(PollArrival(records=(_notification(1, 0), _notification(2, 60), _notification(3, 30))))
    assert [i.id for i in rec.get_view()] == ["2", "3", "1"]


def test_malformed_record_is_dropped_and_rest_of_batch_survives(caplog):
    rec = _chat()
    broken = _msg(2, 1)
    del broken["created_at"]

    accepted = rec.apply(PollArrival(records=(_msg(1), broken, _msg(3, 2))))

    assert accepted == 2
    assert [i.id for i in rec.get_view()] == ["1", "3"]
    assert "Dropping malformed chat record" in caplog.text


def test_items_for_another_stream_are_dropped():
    rec = _chat()
    rec.apply(PushArrival(records=(_msg(1, session=99),)))
    assert rec.get_view() == []


def test_unread_counter_counts_only_foreign_unread_arrivals():
    rec = _chat(local_user="1")
    rec.apply(
        PollArrival(
            records=(
                _msg(1, 0, sender=2),
                _msg(2, 1, sender=1),
                _msg(3, 2, sender=2, read=True),
                _msg(4, 3, sender=2),
            )
        )
    )
    assert rec.unread_count == 2

    rec.apply(PushArrival(records=(_msg(4, 3, sender=2),)))
    assert rec.unread_count == 2


def test_mark_read_decrements_only_if_previously_unread():
    rec = _chat()
    rec.apply(PollArrival(records=(_msg(1), _msg(2, 1))))
    assert rec.unread_count == 2

    assert rec.mark_read("1") is True
    assert rec.unread_count == 1
    assert rec.mark_read("1") is False
    assert rec.unread_count == 1
    assert rec.mark_read("does-not-exist") is False
    assert rec.unread_count == 1


def test_mark_all_read_resets_counter_and_keeps_order():
    rec = _chat()
    rec.apply(PollArrival(records=(_msg(2, 2), _msg(1, 1))))
    before = [i.id for i in rec.get_view()]

    rec.apply(ReadStateArrival(item_ids=None))

    assert rec.unread_count == 0
    assert [i.id for i in rec.get_view()] == before
    assert all(i.read for i in rec.get_view())
    # read-state updates never trip duplicate rejection for later arrivals
    assert rec.apply(PushArrival(records=(_msg(3, 3),))) == 1
    assert rec.unread_count == 1


def test_counter_never_negative():
    rec = _chat()
    rec.mark_all_read()
    rec.mark_read("1")
    assert rec.unread_count == 0


def test_optimistic_arrival_replaces_pending_preview_without_counting():
    rec = _chat(local_user="1")
    preview = parse_record(CHAT_MESSAGES, _msg("tmp", 0, sender=1))
    rec.insert_pending("local-1", preview)
    assert [i.id for i in rec.get_view()] == ["tmp"]

    echo = parse_record(CHAT_MESSAGES, _msg(10, 0, sender=1))
    rec.apply(OptimisticArrival(item=echo, local_id="local-1"))

    assert [i.id for i in rec.get_view()] == ["10"]
    assert rec.unread_count == 0


def test_overlay_revert_restores_item_and_counter():
    rec = _chat()
    rec.apply(PushArrival(records=(_msg(1),)))
    original = rec.get_item("1")

    rec.apply_overlay("local-1", original.with_read(True))
    assert rec.unread_count == 0
    rec.revert_overlay("local-1")

    assert rec.get_item("1") == original
    assert rec.unread_count == 1


def test_listeners_receive_versioned_snapshots():
    rec = _chat()
    seen = []
    unsubscribe = rec.subscribe(seen.append)

    rec.apply(PushArrival(records=(_msg(1),)))
    rec.apply(PushArrival(records=(_msg(1),)))
    unsubscribe()
    rec.apply(PushArrival(records=(_msg(2, 1),)))

    assert len(seen) == 1
    assert seen[0].ids == ["1"]
    assert seen[0].unread_count == 1


def test_state_machine():
    rec = _chat()
    assert rec.state is ReconcilerState.UNINITIALIZED
    rec.begin_subscribe()
    assert rec.state is ReconcilerState.SUBSCRIBING
    rec.apply(PollArrival(records=(_msg(1),)))
    assert rec.state is ReconcilerState.SYNCED

    with pytest.raises(InvalidStateTransition):
        rec.begin_subscribe()

    rec.tear_down()
    assert rec.state is ReconcilerState.TORN_DOWN
    assert rec.get_view() == []
    assert rec.apply(PushArrival(records=(_msg(2),))) == 0
    assert "1" not in rec


def test_listeners_never_see_an_older_view_after_a_newer_one(monkeypatch):
    rec = _chat()
    rec.apply(PushArrival(records=(_msg(1),)))
    seen = []
    rec.subscribe(seen.append)

    published = threading.Event()
    release = threading.Event()
    deliver = rec._notify

    def _held_notify(snapshot):
        if threading.current_thread().name == "arrival":
            published.set()
            assert release.wait(5)
        deliver(snapshot)

    monkeypatch.setattr(rec, "_notify", _held_notify)
    worker = threading.Thread(
        target=rec.apply, args=(PushArrival(records=(_msg(2, 1),)),), name="arrival"
    )
    worker.start()
    assert published.wait(5)

    # the arrival's snapshot is built but not yet delivered when the read lands
    assert rec.mark_read("2") is True
    release.set()
    worker.join(5)

    versions = [s.version for s in seen]
    assert versions == sorted(set(versions))
    assert seen[-1].version == rec.snapshot().version
    assert seen[-1].ids == ["1", "2"]
    assert seen[-1].unread_count == 1


def test_listener_that_mutates_still_ends_on_newest_view():
    rec = _chat()
    seen = []

    def _read_on_arrival(snapshot):
        seen.append(snapshot)
        if snapshot.unread_count:
            rec.mark_all_read()

    rec.subscribe(_read_on_arrival)
    rec.subscribe(lambda snapshot: seen.append(snapshot))
    rec.apply(PushArrival(records=(_msg(1),)))

    assert seen[-1].version == rec.snapshot().version
    assert seen[-1].unread_count == 0
    assert [s.version for s in seen] == sorted(s.version for s in seen)
