"""Stream items, stream kinds and the tagged arrival variants.

Every record entering the sync layer is mapped through :func:`parse_record`
before it reaches a reconciler; anything missing an id, a parent id or a
timestamp is rejected with :class:`MalformedRecordError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError, field_validator

from catnest.core.utils.clock import utcnow  # noqa: F401
from catnest.sync.errors import MalformedRecordError


class Ordering(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    DEGRADED = "degraded"
    CLOSED = "closed"


@dataclass(frozen=True)
class StreamKind:
    """How one family of rows maps onto stream items."""

    name: str
    table: str
    parent_field: str
    origin_field: Optional[str]
    ordering: Ordering
    read_field: Optional[str] = "is_read"
    created_field: str = "created_at"

    @property
    def tracks_read(self) -> bool:
        return self.read_field is not None

    @property
    def header_fields(self) -> frozenset:
        fields = {"id", self.parent_field, self.created_field}
        if self.origin_field:
            fields.add(self.origin_field)
        if self.read_field:
            fields.add(self.read_field)
        return frozenset(fields)


CHAT_MESSAGES = StreamKind(
    name="chat",
    table="support_message",
    parent_field="session_id",
    origin_field="sender_id",
    ordering=Ordering.ASCENDING,
)
NOTIFICATIONS = StreamKind(
    name="notifications",
    table="notification",
    parent_field="user_id",
    origin_field=None,
    ordering=Ordering.DESCENDING,
)
COMMENTS = StreamKind(
    name="comments",
    table="comment",
    parent_field="cat_id",
    origin_field="user_id",
    ordering=Ordering.ASCENDING,
    read_field=None,
)


@dataclass(frozen=True)
class StreamItem:
    id: str
    stream_id: str
    origin_id: Optional[str]
    created_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)
    read: bool = False
    pending: bool = False

    def with_read(self, read: bool = True) -> "StreamItem":
        return replace(self, read=read)

    def with_payload(self, **changes: Any) -> "StreamItem":
        payload = dict(self.payload)
        payload.update(changes)
        return replace(self, payload=payload)

    def sort_key(self) -> Tuple[datetime, str]:
        return (self.created_at, self.id)


def utc_naive(value: datetime) -> datetime:
    """Timestamps are compared as naive UTC, the way the backend stores them."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class _RecordHeader(BaseModel):
    id: Union[int, str]
    parent: Union[int, str]
    origin: Optional[Union[int, str]] = None
    created_at: datetime
    read: bool = False

    @field_validator("id", "parent")
    @classmethod
    def non_blank(cls, v: Union[int, str]) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return utc_naive(v)


def parse_record(kind: StreamKind, raw: Any) -> StreamItem:
    """Map a raw row (REST body, feed insert) to a :class:`StreamItem`."""
    if not isinstance(raw, Mapping):
        raise MalformedRecordError(f"{kind.name} record is not a mapping", record=raw)

    origin = raw.get(kind.origin_field) if kind.origin_field else None
    read = bool(raw.get(kind.read_field) or False) if kind.read_field else True
    try:
        header = _RecordHeader.model_validate(
            {
                "id": raw.get("id"),
                "parent": raw.get(kind.parent_field),
                "origin": origin,
                "created_at": raw.get(kind.created_field),
                "read": read,
            }
        )
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
        raise MalformedRecordError(f"{kind.name} record invalid ({fields})", record=raw) from exc

    headers = kind.header_fields
    return StreamItem(
        id=header.id,
        stream_id=header.parent,
        origin_id=None if header.origin is None else str(header.origin),
        created_at=header.created_at,
        payload={k: v for k, v in raw.items() if k not in headers},
        read=header.read,
    )


# ==================== Arrivals ====================


@dataclass(frozen=True)
class PushArrival:
    """Raw inserts delivered by the push channel."""

    records: Tuple[Mapping[str, Any], ...]


@dataclass(frozen=True)
class PollArrival:
    """A full list returned by a poll tick or a manual refresh."""

    records: Tuple[Mapping[str, Any], ...]
    forced: bool = False


@dataclass(frozen=True)
class OptimisticArrival:
    """The write echo for a locally-created item, replacing preview ``local_id``."""

    item: StreamItem
    local_id: str


@dataclass(frozen=True)
class ReadStateArrival:
    """Read-state change for ``item_ids``, or for every item when None."""

    item_ids: Optional[Tuple[str, ...]] = None


Arrival = Union[PushArrival, PollArrival, OptimisticArrival, ReadStateArrival]
