"""Merge engine: one deduplicated, ordered view per logical stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from catnest.sync.errors import InvalidStateTransition, MalformedRecordError
from catnest.sync.identity import IdentitySet
from catnest.sync.items import (
    Arrival,
    OptimisticArrival,
    Ordering,
    PollArrival,
    PushArrival,
    ReadStateArrival,
    StreamItem,
    StreamKind,
    parse_record,
)

logger = logging.getLogger(__name__)

__all__ = ["Ordering", "Reconciler", "ReconcilerState", "ViewSnapshot"]


class ReconcilerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SUBSCRIBING = "subscribing"
    SYNCED = "synced"
    RECONCILING = "reconciling"
    TORN_DOWN = "torn_down"


_TRANSITIONS = {
    ReconcilerState.UNINITIALIZED: {
        ReconcilerState.SUBSCRIBING,
        ReconcilerState.RECONCILING,
        ReconcilerState.TORN_DOWN,
    },
    ReconcilerState.SUBSCRIBING: {ReconcilerState.RECONCILING, ReconcilerState.TORN_DOWN},
    ReconcilerState.SYNCED: {ReconcilerState.RECONCILING, ReconcilerState.TORN_DOWN},
    ReconcilerState.RECONCILING: {ReconcilerState.SYNCED, ReconcilerState.TORN_DOWN},
    ReconcilerState.TORN_DOWN: set(),
}


@dataclass(frozen=True)
class ViewSnapshot:
    """Immutable copy of the view handed to listeners."""

    version: int
    items: Tuple[StreamItem, ...]
    unread_count: int

    @property
    def ids(self) -> List[str]:
        return [item.id for item in self.items]


@dataclass
class _Overlay:
    target_id: str
    original: StreamItem
    preview: StreamItem
    was_counted: bool = False


Listener = Callable[[ViewSnapshot], None]
PreviewClaimer = Callable[[StreamItem], Optional[str]]


@dataclass
class _Changes:
    dirty: bool = False
    accepted: List[str] = field(default_factory=list)


class Reconciler:
    """Owns the identity set, the collection and the unread counter of one stream.

    Arrivals are merged one batch at a time under a re-entrant lock. An id
    already in the identity set is discarded; everything else is added and
    the view is re-sorted by ``(created_at, id)``. Read-state changes update
    items in place without touching ordering or identity.
    """

    def __init__(
        self,
        kind: StreamKind,
        stream_id: str,
        local_user_id: Optional[str] = None,
        ordering: Optional[Ordering] = None,
    ) -> None:
        self.kind = kind
        self.stream_id = str(stream_id)
        self.local_user_id = None if local_user_id is None else str(local_user_id)
        self.ordering = ordering or kind.ordering
        self.preview_claimer: Optional[PreviewClaimer] = None
        self._lock = RLock()
        self._notify_lock = RLock()
        self._delivered_version = 0
        self._state = ReconcilerState.UNINITIALIZED
        self._identity = IdentitySet()
        self._items: Dict[str, StreamItem] = {}
        self._pending: Dict[str, StreamItem] = {}
        self._overlays: Dict[str, _Overlay] = {}
        self._counted: Set[str] = set()
        self._listeners: List[Listener] = []
        self._view: Tuple[StreamItem, ...] = ()
        self._version = 0

    # ---- lifecycle ----

    @property
    def state(self) -> ReconcilerState:
        return self._state

    def _transition(self, target: ReconcilerState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidStateTransition(f"{self._state.value} -> {target.value}")
        self._state = target

    def begin_subscribe(self) -> None:
        with self._lock:
            self._transition(ReconcilerState.SUBSCRIBING)

    def tear_down(self) -> None:
        """Discard all state; later arrivals are ignored."""
        with self._lock:
            if self._state is ReconcilerState.TORN_DOWN:
                return
            self._transition(ReconcilerState.TORN_DOWN)
            self._identity.clear()
            self._items.clear()
            self._pending.clear()
            self._overlays.clear()
            self._counted.clear()
            self._listeners.clear()
            self._view = ()
            self._version += 1

    # ---- reads ----

    def get_view(self) -> List[StreamItem]:
        with self._lock:
            return list(self._view)

    def snapshot(self) -> ViewSnapshot:
        with self._lock:
            return ViewSnapshot(self._version, self._view, len(self._counted))

    @property
    def unread_count(self) -> int:
        with self._lock:
            return len(self._counted)

    def get_item(self, item_id: str) -> Optional[StreamItem]:
        with self._lock:
            return self._items.get(str(item_id))

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._identity

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for view changes; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ---- arrivals ----

    def apply(self, arrival: Arrival) -> int:
        """Merge one arrival batch; returns how many new items were accepted."""
        with self._lock:
            if self._state is ReconcilerState.TORN_DOWN:
                logger.debug("Ignoring %s for torn-down %s stream", type(arrival).__name__, self.kind.name)
                return 0
            self._transition(ReconcilerState.RECONCILING)
            try:
                changes = self._merge(arrival)
            finally:
                self._transition(ReconcilerState.SYNCED)
            snapshot = self._publish() if changes.dirty else None
        self._notify(snapshot)
        return len(changes.accepted)

    def on_arrival(self, item: StreamItem) -> bool:
        """Merge a single already-mapped item the way a pushed row would be."""
        with self._lock:
            if self._state is ReconcilerState.TORN_DOWN:
                return False
            self._transition(ReconcilerState.RECONCILING)
            try:
                accepted = self._accept(item, count_unread=True)
            finally:
                self._transition(ReconcilerState.SYNCED)
            snapshot = self._publish() if accepted else None
        self._notify(snapshot)
        return accepted

    def _merge(self, arrival: Arrival) -> _Changes:
        changes = _Changes()
        if isinstance(arrival, (PushArrival, PollArrival)):
            for raw in arrival.records:
                try:
                    item = parse_record(self.kind, raw)
                except MalformedRecordError as exc:
                    logger.warning("Dropping malformed %s record: %s", self.kind.name, exc)
                    continue
                if self._accept(item, count_unread=True):
                    changes.accepted.append(item.id)
            changes.dirty = bool(changes.accepted)
        elif isinstance(arrival, OptimisticArrival):
            removed = self._pending.pop(arrival.local_id, None) is not None
            if self._accept(arrival.item, count_unread=False):
                changes.accepted.append(arrival.item.id)
            changes.dirty = removed or bool(changes.accepted)
        elif isinstance(arrival, ReadStateArrival):
            changes.dirty = self._mark_read(arrival.item_ids)
        else:
            raise TypeError(f"unsupported arrival {type(arrival).__name__}")
        return changes

    def _accept(self, item: StreamItem, count_unread: bool) -> bool:
        if item.stream_id != self.stream_id:
            logger.warning(
                "Dropping %s item %s for stream %s (expected %s)",
                self.kind.name,
                item.id,
                item.stream_id,
                self.stream_id,
            )
            return False
        if not self._identity.add(item.id):
            return False
        self._items[item.id] = item
        if count_unread and self.preview_claimer is not None:
            local_id = self.preview_claimer(item)
            if local_id is not None:
                self._pending.pop(local_id, None)
        if count_unread and self._counts_as_unread(item):
            self._counted.add(item.id)
        return True

    def _counts_as_unread(self, item: StreamItem) -> bool:
        if not self.kind.tracks_read or item.read:
            return False
        return not (self.local_user_id is not None and item.origin_id == self.local_user_id)

    def _mark_read(self, item_ids: Optional[Iterable[str]]) -> bool:
        targets = list(self._items) if item_ids is None else [str(i) for i in item_ids]
        dirty = False
        for item_id in targets:
            item = self._items.get(item_id)
            if item is None:
                continue
            if not item.read:
                self._items[item_id] = item.with_read(True)
                dirty = True
            if item_id in self._counted:
                self._counted.discard(item_id)
                dirty = True
        if item_ids is None and self._counted:
            self._counted.clear()
            dirty = True
        return dirty

    def mark_read(self, item_id: str) -> bool:
        return self._apply_local(lambda: self._mark_read((item_id,)))

    def mark_all_read(self) -> bool:
        return self._apply_local(lambda: self._mark_read(None))

    # ---- unconfirmed previews (tracker only) ----

    def insert_pending(self, local_id: str, preview: StreamItem) -> bool:
        def _insert() -> bool:
            self._pending[local_id] = preview
            return True

        return self._apply_local(_insert)

    def remove_pending(self, local_id: str) -> bool:
        return self._apply_local(lambda: self._pending.pop(local_id, None) is not None)

    def has_pending(self, local_id: str) -> bool:
        with self._lock:
            return local_id in self._pending

    def apply_overlay(self, local_id: str, preview: StreamItem) -> bool:
        """Show ``preview`` in place of the known item with the same id."""

        def _overlay() -> bool:
            original = self._items.get(preview.id)
            if original is None:
                return False
            was_counted = preview.id in self._counted
            self._overlays[local_id] = _Overlay(preview.id, original, preview, was_counted)
            self._items[preview.id] = preview
            if preview.read and was_counted:
                self._counted.discard(preview.id)
            return True

        return self._apply_local(_overlay)

    def commit_overlay(self, local_id: str, authoritative: Optional[StreamItem] = None) -> bool:
        def _commit() -> bool:
            overlay = self._overlays.pop(local_id, None)
            if overlay is None:
                return False
            if any(o.target_id == overlay.target_id for o in self._overlays.values()):
                # A later toggle on the same item owns the displayed value.
                return True
            current = self._items.get(overlay.target_id)
            if authoritative is not None and authoritative.id == overlay.target_id:
                self._items[overlay.target_id] = replace(authoritative, pending=False)
            elif current is not None and current.pending:
                self._items[overlay.target_id] = replace(current, pending=False)
            return True

        return self._apply_local(_commit)

    def revert_overlay(self, local_id: str) -> bool:
        def _revert() -> bool:
            overlay = self._overlays.pop(local_id, None)
            if overlay is None:
                return False
            if self._items.get(overlay.target_id) is overlay.preview:
                self._items[overlay.target_id] = overlay.original
                if overlay.was_counted:
                    self._counted.add(overlay.target_id)
            return True

        return self._apply_local(_revert)

    # ---- internals ----

    def _apply_local(self, mutate: Callable[[], bool]) -> bool:
        with self._lock:
            if self._state is ReconcilerState.TORN_DOWN:
                return False
            changed = mutate()
            snapshot = self._publish() if changed else None
        self._notify(snapshot)
        return changed

    def _publish(self) -> ViewSnapshot:
        items = list(self._items.values()) + list(self._pending.values())
        items.sort(
            key=StreamItem.sort_key,
            reverse=self.ordering is Ordering.DESCENDING,
        )
        self._view = tuple(items)
        self._version += 1
        return ViewSnapshot(self._version, self._view, len(self._counted))

    def _notify(self, snapshot: Optional[ViewSnapshot]) -> None:
        """Deliver in version order; a snapshot overtaken by a newer one is dropped."""
        if snapshot is None:
            return
        with self._notify_lock:
            if snapshot.version <= self._delivered_version:
                return
            self._delivered_version = snapshot.version
            with self._lock:
                listeners = list(self._listeners)
            for listener in listeners:
                if snapshot.version < self._delivered_version:
                    # A listener re-entered and a newer view has gone out already.
                    return
                try:
                    listener(snapshot)
                except Exception:
                    logger.exception("View listener failed for %s stream", self.kind.name)
