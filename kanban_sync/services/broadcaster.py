"""Change broadcaster — fan-out of authoritative change events.

Every connected client holds a Subscription (a bounded queue). Store
functions never publish directly: they queue events on the SQLAlchemy
session with ``broadcaster.queue(db.session, ...)`` and the events go out
from the session's ``after_commit`` hook. A rollback throws them away, so a
client never hears about a write that did not persist.

Delivery is at-most-once and fire-and-forget:
    - no acknowledgment, no replay for disconnected subscribers
    - a subscriber whose queue is full loses the event (logged)

Event kinds (payloads are the camelCase wire projection):
    task.created   full task
    task.updated   id, boardId, updatedAt + only the fields that changed
    task.deleted   id, boardId
    board.updated  {type: created|updated, board} or {type: deleted, boardId}

Payloads carry ``clientId`` when the mutating request supplied one.
"""

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
TASK_UPDATED = "task.updated"
TASK_DELETED = "task.deleted"
BOARD_UPDATED = "board.updated"

EVENT_KINDS = (TASK_CREATED, TASK_UPDATED, TASK_DELETED, BOARD_UPDATED)

PENDING_EVENTS_KEY = "kanban_sync.pending_events"


@dataclass(frozen=True)
class ChangeEvent:
    event_id: int
    kind: str
    payload: dict = field(default_factory=dict)

    @property
    def client_id(self) -> Optional[str]:
        return self.payload.get("clientId")

    def to_sse(self) -> str:
        """Render as one Server-Sent Events frame."""
        return (
            f"id: {self.event_id}\n"
            f"event: {self.kind}\n"
            f"data: {json.dumps(self.payload, separators=(',', ':'))}\n\n"
        )


class Subscription:
    """One connected client's view of the broadcast stream."""

    def __init__(self, hub: "ChangeBroadcaster", maxsize: int) -> None:
        self._hub = hub
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, evt: ChangeEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(evt)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None if nothing arrives within *timeout*.

        ``timeout=0`` polls without blocking.
        """
        try:
            if timeout == 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list:
        events = []
        while True:
            evt = self.get(timeout=0)
            if evt is None:
                return events
            events.append(evt)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._hub._unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ChangeBroadcaster:
    """In-process pub/sub hub for change events.

    Usage::

        broadcaster.init_app(app)

        with broadcaster.subscribe() as sub:
            evt = sub.get(timeout=15)

        # inside a store function, before the caller commits:
        broadcaster.queue(db.session, TASK_UPDATED, payload, client_id)
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._subscribers: list = []
        self._event_counter = 0
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.queue_size = app.config.get("EVENT_QUEUE_SIZE", self.queue_size)
        app.extensions["kanban_broadcaster"] = self
        if not event.contains(Session, "after_commit", self._on_commit):
            event.listen(Session, "after_commit", self._on_commit)
            event.listen(Session, "after_rollback", self._on_rollback)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        sub = Subscription(self, maxsize or self.queue_size)
        with self._lock:
            self._subscribers.append(sub)
        logger.debug(f"Broadcaster: subscriber added (total={len(self._subscribers)})")
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
        logger.debug(f"Broadcaster: subscriber removed (total={len(self._subscribers)})")

    def publish(self, kind: str, payload: Any, client_id: Optional[str] = None) -> ChangeEvent:
        """Push an event to every current subscriber. Never blocks."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        data = dict(payload or {})
        if client_id:
            data["clientId"] = client_id

        with self._lock:
            self._event_counter += 1
            evt = ChangeEvent(event_id=self._event_counter, kind=kind, payload=data)
            subscribers = list(self._subscribers)

        for sub in subscribers:
            if not sub.offer(evt):
                logger.warning(
                    f"Broadcaster: dropped {kind} #{evt.event_id} for a slow subscriber "
                    f"({sub.dropped} dropped so far)"
                )
        return evt

    # -- transactional queueing ------------------------------------------

    def queue(self, session, kind: str, payload: Any, client_id: Optional[str] = None) -> None:
        """Hold an event on *session* until it commits."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        session.info.setdefault(PENDING_EVENTS_KEY, []).append(
            (kind, dict(payload), client_id)
        )

    def pending(self, session) -> list:
        return list(session.info.get(PENDING_EVENTS_KEY, []))

    def _on_commit(self, session) -> None:
        for kind, payload, client_id in session.info.pop(PENDING_EVENTS_KEY, []):
            self.publish(kind, payload, client_id)

    def _on_rollback(self, session) -> None:
        discarded = session.info.pop(PENDING_EVENTS_KEY, [])
        if discarded:
            logger.info(f"Broadcaster: discarded {len(discarded)} event(s) after rollback")
