"""Ready-made scopes for the three CatNest streams."""

from __future__ import annotations

from typing import Any, Callable, Optional

from catnest.sync.adapter import ChangeFeed
from catnest.sync.client import CatNestClient
from catnest.sync.config import SyncConfig
from catnest.sync.errors import SyncError
from catnest.sync.items import CHAT_MESSAGES, COMMENTS, NOTIFICATIONS
from catnest.sync.scope import StreamWriter, SyncScope
from catnest.sync.sse import SSEChangeFeed


def sse_feed_for(client: CatNestClient, config: SyncConfig) -> SSEChangeFeed:
    """Push feed sharing the client's base URL and token."""
    return SSEChangeFeed(
        client.base_url,
        access_token=client.access_token,
        reconnect_seconds=config.sse_reconnect_seconds,
        connect_timeout=config.http_timeout_seconds,
    )


def _build(
    client: CatNestClient,
    kind,
    scope_id: str,
    fetch_all,
    writer: StreamWriter,
    feed: Optional[ChangeFeed],
    config: Optional[SyncConfig],
    on_error: Optional[Callable[[SyncError], None]],
    auto_open: bool,
    use_push: bool = True,
    **kwargs: Any,
) -> SyncScope:
    config = config or SyncConfig.from_env()
    if feed is None and use_push:
        feed = sse_feed_for(client, config)
    scope = SyncScope(
        kind,
        scope_id,
        fetch_all,
        feed=feed,
        writer=writer,
        local_user_id=client.user_id,
        config=config,
        on_error=on_error,
        **kwargs,
    )
    if auto_open:
        scope.open()
    return scope


def open_support_chat(
    client: CatNestClient,
    session_id: str,
    feed: Optional[ChangeFeed] = None,
    config: Optional[SyncConfig] = None,
    on_error: Optional[Callable[[SyncError], None]] = None,
    auto_open: bool = True,
    **kwargs: Any,
) -> SyncScope:
    """Messages of one support session, oldest first.

    Marking read is session-wide on the backend, so single-item reads stay local.
    """
    writer = StreamWriter(
        create=lambda payload: client.send_support_message(
            session_id,
            payload["content"],
            payload.get("msg_type", "text"),
        ),
        mark_all_read=lambda: client.mark_support_session_read(session_id),
    )
    return _build(
        client,
        CHAT_MESSAGES,
        session_id,
        lambda sid: client.fetch_support_messages(sid),
        writer,
        feed,
        config,
        on_error,
        auto_open,
        **kwargs,
    )


def open_notification_feed(
    client: CatNestClient,
    feed: Optional[ChangeFeed] = None,
    config: Optional[SyncConfig] = None,
    on_error: Optional[Callable[[SyncError], None]] = None,
    auto_open: bool = True,
    **kwargs: Any,
) -> SyncScope:
    """The signed-in user's notifications, newest first."""
    if client.user_id is None:
        raise ValueError("client is not signed in")
    writer = StreamWriter(
        mark_read=client.mark_notification_read,
        mark_all_read=client.mark_all_notifications_read,
    )
    return _build(
        client,
        NOTIFICATIONS,
        client.user_id,
        lambda _uid: client.fetch_notifications(),
        writer,
        feed,
        config,
        on_error,
        auto_open,
        **kwargs,
    )


def open_comment_thread(
    client: CatNestClient,
    cat_id: str,
    feed: Optional[ChangeFeed] = None,
    config: Optional[SyncConfig] = None,
    on_error: Optional[Callable[[SyncError], None]] = None,
    auto_open: bool = True,
    **kwargs: Any,
) -> SyncScope:
    """Comments on one cat, oldest first, with optimistic likes."""
    writer = StreamWriter(
        create=lambda payload: client.post_comment(cat_id, payload["content"], payload.get("parent_id")),
        toggle_like=client.toggle_comment_like,
    )
    return _build(
        client,
        COMMENTS,
        cat_id,
        lambda cid: client.fetch_comments(cid),
        writer,
        feed,
        config,
        on_error,
        auto_open,
        **kwargs,
    )
