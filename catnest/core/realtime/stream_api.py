"""Server-Sent Events endpoint streaming change-feed inserts."""

from __future__ import annotations

import json
import logging
import queue
import threading

from flask import Blueprint, Response, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from catnest.core.realtime.change_feed import ChangeEvent, ChangeFeedBus
from catnest.core.realtime.policy import can_subscribe

logger = logging.getLogger(__name__)

realtime_api_bp = Blueprint("realtime_api", __name__)


def _format_sse(event: ChangeEvent) -> str:
    data = json.dumps({"table": event.table, "event": event.event, "new": event.record}, default=str)
    return f"event: {event.event.lower()}\ndata: {data}\n\n"


@realtime_api_bp.get("/<table>")
@jwt_required()
def stream_table(table: str):
    """
    Stream inserts on ``table`` filtered by ``column = value``.

    Query Parameters:
    - column: filter column (e.g. session_id, user_id, cat_id)
    - value: filter value
    """
    user_id = int(get_jwt_identity())
    column = request.args.get("column")
    value = request.args.get("value")
    if not column or value is None:
        return jsonify({"ok": False, "error": "filter_required"}), 400

    allowed, reason = can_subscribe(user_id, table, column, value)
    if not allowed:
        status = 404 if reason == "unknown_table" else 403
        return jsonify({"ok": False, "error": reason}), status

    bus: ChangeFeedBus = current_app.extensions["change_feed"]
    heartbeat = float(current_app.config.get("REALTIME_HEARTBEAT_SECONDS", 15))
    inbox: "queue.Queue[ChangeEvent]" = queue.Queue(
        maxsize=int(current_app.config.get("REALTIME_QUEUE_SIZE", 256))
    )

    overflowed = threading.Event()

    def _enqueue(event: ChangeEvent) -> None:
        try:
            inbox.put_nowait(event)
        except queue.Full:
            # Ending the stream makes the client reconnect and re-fetch what it missed.
            logger.warning("Realtime queue full for %s %s=%s, closing stream", table, column, value)
            overflowed.set()

    # Subscribe before the response starts so no insert slips between.
    sub_id = bus.subscribe(table, _enqueue, column=column, value=value)

    def _generate():
        try:
            yield ": subscribed\n\n"
            while not overflowed.is_set():
                try:
                    event = inbox.get(timeout=heartbeat)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield _format_sse(event)
        finally:
            bus.unsubscribe(sub_id)
            logger.debug("Realtime stream closed for %s %s=%s", table, column, value)

    return Response(
        _generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
