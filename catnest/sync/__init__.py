"""Client-side realtime sync: push, poll fallback, optimistic writes, one merged view."""

from catnest.sync.adapter import BusChangeFeed, ChangeFeed, StreamAdapter, Subscription
from catnest.sync.client import CatNestClient
from catnest.sync.config import SyncConfig
from catnest.sync.errors import (
    InvalidStateTransition,
    MalformedRecordError,
    PersistentPollFailure,
    SyncError,
    TransportError,
    WriteRejectedError,
)
from catnest.sync.identity import IdentitySet
from catnest.sync.items import (
    CHAT_MESSAGES,
    COMMENTS,
    NOTIFICATIONS,
    ConnectionStatus,
    OptimisticArrival,
    Ordering,
    PollArrival,
    PushArrival,
    ReadStateArrival,
    StreamItem,
    StreamKind,
    parse_record,
)
from catnest.sync.optimistic import MutationKind, OptimisticEntry, OptimisticMutationTracker, Resolution
from catnest.sync.poller import PollFallbackScheduler
from catnest.sync.reconciler import Reconciler, ReconcilerState, ViewSnapshot
from catnest.sync.scope import StreamWriter, SyncScope
from catnest.sync.sse import SSEChangeFeed
from catnest.sync.streams import open_comment_thread, open_notification_feed, open_support_chat

__all__ = [
    "BusChangeFeed",
    "CHAT_MESSAGES",
    "COMMENTS",
    "CatNestClient",
    "ChangeFeed",
    "ConnectionStatus",
    "IdentitySet",
    "InvalidStateTransition",
    "MalformedRecordError",
    "MutationKind",
    "NOTIFICATIONS",
    "OptimisticArrival",
    "OptimisticEntry",
    "OptimisticMutationTracker",
    "Ordering",
    "PersistentPollFailure",
    "PollArrival",
    "PollFallbackScheduler",
    "PushArrival",
    "ReadStateArrival",
    "Reconciler",
    "ReconcilerState",
    "Resolution",
    "SSEChangeFeed",
    "StreamAdapter",
    "StreamItem",
    "StreamKind",
    "StreamWriter",
    "Subscription",
    "SyncConfig",
    "SyncError",
    "SyncScope",
    "TransportError",
    "ViewSnapshot",
    "WriteRejectedError",
    "open_comment_thread",
    "open_notification_feed",
    "open_support_chat",
    "parse_record",
]
