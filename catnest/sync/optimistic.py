"""Optimistic local previews and their confirm/rollback bookkeeping."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from catnest.sync.errors import WriteRejectedError
from catnest.sync.items import (
    Arrival,
    OptimisticArrival,
    StreamItem,
    StreamKind,
    parse_record,
    utcnow,
)
from catnest.sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    CREATE = "create"
    TOGGLE_LIKE = "toggle_like"
    TOGGLE_FAVORITE = "toggle_favorite"
    MARK_READ = "mark_read"


class Resolution(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class OptimisticEntry:
    local_id: str
    kind: MutationKind
    preview: StreamItem
    submitted_at: datetime
    resolution: Resolution = Resolution.PENDING
    resolved_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.resolution is Resolution.PENDING


def create_preview(
    kind: StreamKind,
    stream_id: str,
    origin_id: Optional[str],
    payload: Mapping[str, Any],
    created_at: Optional[datetime] = None,
) -> StreamItem:
    """Preview for a new item; the tracker assigns its temporary id."""
    return StreamItem(
        id="",
        stream_id=str(stream_id),
        origin_id=None if origin_id is None else str(origin_id),
        created_at=created_at or utcnow(),
        payload=dict(payload),
        read=not kind.tracks_read,
        pending=True,
    )


def toggle_like_preview(item: StreamItem) -> StreamItem:
    liked = not bool(item.payload.get("liked", False))
    count = int(item.payload.get("like_count") or 0) + (1 if liked else -1)
    return item.with_payload(liked=liked, like_count=max(count, 0))


def toggle_favorite_preview(item: StreamItem) -> StreamItem:
    favorited = not bool(item.payload.get("favorited", False))
    changes: Dict[str, Any] = {"favorited": favorited}
    if "favorite_count" in item.payload:
        count = int(item.payload.get("favorite_count") or 0) + (1 if favorited else -1)
        changes["favorite_count"] = max(count, 0)
    return item.with_payload(**changes)


def mark_read_preview(item: StreamItem) -> StreamItem:
    return item.with_read(True)


class OptimisticMutationTracker:
    """Pairs each local preview with the outcome of its write.

    Create previews go into the reconciler's pending slot; toggles and
    mark-read are overlays on an item the reconciler already holds. Confirm
    hands the write echo to ``submit`` as an :class:`OptimisticArrival` so it
    lands through the normal arrival path. When a push or poll delivers the
    new row before the echo returns, :meth:`claim_preview` matches it to the
    oldest pending preview from the same origin with the same payload.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        submit: Optional[Callable[[Arrival], Any]] = None,
        on_error: Optional[Callable[[WriteRejectedError], None]] = None,
        match_tolerance_seconds: float = 10.0,
    ) -> None:
        self.reconciler = reconciler
        self._submit = submit or reconciler.apply
        self._on_error = on_error
        self.match_tolerance = timedelta(seconds=match_tolerance_seconds)
        self._lock = Lock()
        self._entries: Dict[str, OptimisticEntry] = {}
        reconciler.preview_claimer = self.claim_preview

    def pending(self) -> List[OptimisticEntry]:
        with self._lock:
            return [e for e in self._entries.values() if e.is_pending]

    def get(self, local_id: str) -> Optional[OptimisticEntry]:
        with self._lock:
            return self._entries.get(local_id)

    def apply_optimistic(self, kind: MutationKind, preview: StreamItem) -> str:
        """Show ``preview`` immediately; returns the local id to resolve later."""
        local_id = f"local-{uuid.uuid4().hex}"
        if kind is MutationKind.CREATE:
            preview = replace(preview, id=local_id, pending=True)
        else:
            preview = replace(preview, pending=True)
        entry = OptimisticEntry(
            local_id=local_id,
            kind=kind,
            preview=preview,
            submitted_at=utcnow(),
        )
        with self._lock:
            self._entries[local_id] = entry

        if kind is MutationKind.CREATE:
            self.reconciler.insert_pending(local_id, preview)
        elif not self.reconciler.apply_overlay(local_id, preview):
            with self._lock:
                self._entries.pop(local_id, None)
            raise ValueError("unknown_item")
        return local_id

    def confirm(
        self,
        local_id: str,
        authoritative: Union[StreamItem, Mapping[str, Any], None] = None,
    ) -> OptimisticEntry:
        item = authoritative
        if item is not None and not isinstance(item, StreamItem):
            # A malformed echo leaves the entry pending so the caller can still fail it.
            item = parse_record(self.reconciler.kind, item)
        known = self.get(local_id)
        if known is not None and known.kind is MutationKind.CREATE and item is None:
            raise ValueError("create confirmation requires the created record")
        entry = self._resolve(local_id, Resolution.CONFIRMED)

        if entry.kind is MutationKind.CREATE:
            entry.resolved_id = entry.resolved_id or item.id
            self._submit(OptimisticArrival(item=item, local_id=local_id))
        else:
            self.reconciler.commit_overlay(local_id, item)
        self._forget(local_id)
        return entry

    def fail(self, local_id: str, error: Optional[BaseException] = None) -> OptimisticEntry:
        entry = self._resolve(local_id, Resolution.FAILED)
        entry.error = str(error) if error is not None else "write_failed"
        if entry.kind is MutationKind.CREATE:
            self.reconciler.remove_pending(local_id)
        else:
            self.reconciler.revert_overlay(local_id)
        self._forget(local_id)

        logger.warning("Optimistic %s %s rolled back: %s", entry.kind.value, local_id, entry.error)
        if self._on_error is not None:
            if isinstance(error, WriteRejectedError):
                rejected = error
                rejected.local_id = local_id
            else:
                rejected = WriteRejectedError(entry.error, local_id=local_id)
            self._on_error(rejected)
        return entry

    def claim_preview(self, item: StreamItem) -> Optional[str]:
        """Match a pushed or polled row to an unresolved create preview."""
        with self._lock:
            candidates = [
                e
                for e in self._entries.values()
                if e.kind is MutationKind.CREATE and e.resolved_id is None and self._matches(e, item)
            ]
            if not candidates:
                return None
            entry = min(candidates, key=lambda e: e.submitted_at)
            entry.resolved_id = item.id
        logger.debug("Matched %s to pending preview %s", item.id, entry.local_id)
        return entry.local_id

    def _matches(self, entry: OptimisticEntry, item: StreamItem) -> bool:
        preview = entry.preview
        if preview.stream_id != item.stream_id or preview.origin_id != item.origin_id:
            return False
        if any(item.payload.get(k) != v for k, v in preview.payload.items()):
            return False
        return abs(item.created_at - entry.submitted_at) <= self.match_tolerance

    def _resolve(self, local_id: str, resolution: Resolution) -> OptimisticEntry:
        with self._lock:
            entry = self._entries.get(local_id)
            if entry is None or not entry.is_pending:
                raise KeyError(f"no pending optimistic entry {local_id}")
            entry.resolution = resolution
        return entry

    def _forget(self, local_id: str) -> None:
        with self._lock:
            self._entries.pop(local_id, None)
