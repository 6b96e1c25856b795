"""Events blueprint — /events

Server-Sent Events stream of every change broadcast. One subscription per
open connection; nothing is replayed, so a client that reconnects must
re-fetch /boards and /tasks.

Frames:
    id: <event id>
    event: task.created | task.updated | task.deleted | board.updated
    data: <JSON payload, with clientId when the mutation was tagged>

While idle the stream sends ``heartbeat`` events (data ``{}``). They keep
proxies from closing the connection and let a reading client return
control between changes.
"""

import logging

from flask import Blueprint, Response, current_app

from kanban_sync.extensions import broadcaster

events_bp = Blueprint("events", __name__, url_prefix="/events")

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = "event: heartbeat\ndata: {}\n\n"


def stream_events(subscription, heartbeat, max_frames=None):
    """Yield SSE frames from *subscription* until closed.

    *max_frames* bounds the generator (heartbeats included).
    """
    sent = 0
    try:
        yield "retry: 3000\n\n"
        while max_frames is None or sent < max_frames:
            evt = subscription.get(timeout=heartbeat)
            yield evt.to_sse() if evt is not None else HEARTBEAT_FRAME
            sent += 1
    finally:
        subscription.close()


@events_bp.route("", methods=["GET"])
def stream():
    subscription = broadcaster.subscribe()
    heartbeat = current_app.config.get("EVENT_STREAM_HEARTBEAT", 15)
    logger.info(f"Event stream opened (subscribers={broadcaster.subscriber_count})")
    return Response(
        stream_events(subscription, heartbeat),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
