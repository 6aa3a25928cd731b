"""CLI command for following a live stream from a running CatNest server.

Usage:
    flask watch-stream --device-id my-device-01 --stream notifications
    flask watch-stream --device-id my-device-01 --stream chat --send "hello"
    flask watch-stream --device-id my-device-01 --stream comments --cat-id 7 --seconds 30
"""

from __future__ import annotations

import logging
import os
import time

import click

from catnest.sync.client import CatNestClient
from catnest.sync.config import SyncConfig
from catnest.sync.errors import SyncError
from catnest.sync.reconciler import ViewSnapshot
from catnest.sync.streams import open_comment_thread, open_notification_feed, open_support_chat


def _describe(item) -> str:
    payload = item.payload
    text = payload.get("content") or payload.get("title") or ""
    flags = []
    if item.pending:
        flags.append("pending")
    if not item.read:
        flags.append("unread")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"{item.created_at:%H:%M:%S} #{item.id} {text}{suffix}"


@click.command("watch-stream")
@click.option("--base-url", default=lambda: os.environ.get("CATNEST_BASE_URL", "http://127.0.0.1:5000"), show_default="CATNEST_BASE_URL")
@click.option("--device-id", required=True, help="Device id to sign in with")
@click.option("--nickname", default=None)
@click.option("--stream", "stream_name", type=click.Choice(["chat", "notifications", "comments"]), default="notifications")
@click.option("--cat-id", default=None, help="Cat to follow (comments stream)")
@click.option("--send", "message", default=None, help="Send one message/comment after opening")
@click.option("--seconds", type=float, default=None, help="Stop after this many seconds")
@click.option("--no-push", is_flag=True, help="Poll only; skip the realtime stream")
def watch_stream_command(base_url, device_id, nickname, stream_name, cat_id, message, seconds, no_push):
    """Open a sync scope and print the merged view whenever it changes."""
    logging.basicConfig(level=os.environ.get("CATNEST_LOGLEVEL", "WARNING").upper())
    config = SyncConfig.from_env()
    client = CatNestClient(base_url, timeout=config.http_timeout_seconds)

    try:
        user = client.login_device(device_id, nickname=nickname)
    except SyncError as e:
        click.echo(f"Login failed: {e}", err=True)
        raise click.Abort()
    click.echo(f"Signed in as #{user['id']} ({user.get('nickname') or device_id})")

    def on_error(error: SyncError) -> None:
        click.echo(f"  ✗ {error}", err=True)

    try:
        if stream_name == "chat":
            session = client.open_support_session()
            scope = open_support_chat(client, str(session["id"]), config=config, on_error=on_error, auto_open=False, use_push=not no_push)
        elif stream_name == "comments":
            if not cat_id:
                click.echo("--cat-id is required for the comments stream", err=True)
                raise click.Abort()
            scope = open_comment_thread(client, cat_id, config=config, on_error=on_error, auto_open=False, use_push=not no_push)
        else:
            scope = open_notification_feed(client, config=config, on_error=on_error, auto_open=False, use_push=not no_push)
    except SyncError as e:
        click.echo(f"Could not open stream: {e}", err=True)
        raise click.Abort()

    def on_view(snapshot: ViewSnapshot) -> None:
        click.echo(f"--- {stream_name} v{snapshot.version} ({len(snapshot.items)} items, {snapshot.unread_count} unread)")
        for item in snapshot.items:
            click.echo(f"  {_describe(item)}")

    started = time.monotonic()
    with scope:
        on_view(scope.snapshot())
        scope.subscribe(on_view)
        if message and scope.writer.create is None:
            click.echo(f"--send is not supported on the {stream_name} stream", err=True)
        elif message:
            entry = scope.send_optimistic({"content": message})
            click.echo(f"Sent {entry.local_id}: {entry.resolution.value}")
        last_indicator = None
        try:
            while seconds is None or time.monotonic() - started < seconds:
                indicator = scope.connection_indicator
                if indicator != last_indicator:
                    click.echo(f"[{indicator}]")
                    last_indicator = indicator
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
    click.echo("Stream closed.")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(watch_stream_command)
