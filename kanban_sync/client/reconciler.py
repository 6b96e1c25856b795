"""Event reconciler — folds broadcast events into the local mirror.

Rules, in order:
    1. events tagged with our own client id are dropped (we already applied
       the change optimistically or from the API response); an event with
       no tag is never treated as ours
    2. an event id seen before is dropped
    3. task.created for a known id is ignored
    4. task.updated for an unknown id is ignored (it is not a create)
    5. task.updated is classified against the task's prior local state:
           column changed               → "moved" notification
           title or description changed → "edited" notification
           only position changed        → applied silently

Rule 5 keeps the re-indexing side effects of someone else's move (one
position update per shifted sibling) from turning into a notification
storm.
"""

import logging
from collections import deque
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from kanban_sync.client.mirror import MirrorBoard, MirrorTask, patch_from_payload
from kanban_sync.services.broadcaster import (
    BOARD_UPDATED,
    TASK_CREATED,
    TASK_DELETED,
    TASK_UPDATED,
    ChangeEvent,
)

logger = logging.getLogger(__name__)

SEEN_EVENT_WINDOW = 1024


@dataclass(frozen=True)
class Notification:
    kind: str          # created | moved | edited | deleted
    task_id: str
    title: str = ""
    level: str = "info"


class EventReconciler:
    def __init__(self, mirror, connection, client_id: str) -> None:
        self.mirror = mirror
        self.connection = connection
        self.client_id = client_id
        self.listeners: List[Callable[[Notification], None]] = []
        self.resync_handlers: List[Callable[[], None]] = []
        self._seen = set()
        self._seen_order = deque()

    def on_notification(self, callback: Callable[[Notification], None]) -> None:
        self.listeners.append(callback)

    def on_resync(self, callback: Callable[[], None]) -> None:
        """Called after the connection was lost and events may be missing."""
        self.resync_handlers.append(callback)

    # -- event loop ----------------------------------------------------

    def pump(self, max_events: Optional[int] = None, timeout: Optional[float] = 0) -> int:
        """Receive and apply events until none is waiting.

        Returns how many events were received (including suppressed ones).
        """
        received = 0
        while max_events is None or received < max_events:
            evt = self.connection.receive(timeout=timeout)
            if evt is None:
                if self.connection.lost:
                    self._resync()
                break
            received += 1
            self.handle(evt)
        return received

    def _resync(self) -> None:
        logger.info("Connection lost; requesting full re-fetch")
        # A restarted server numbers its events from 1 again.
        self._seen.clear()
        self._seen_order.clear()
        for handler in list(self.resync_handlers):
            handler()

    # -- dispatch ------------------------------------------------------

    def handle(self, evt: ChangeEvent) -> Optional[Notification]:
        """Apply one event. Returns the notification it produced, if any."""
        if self.is_self_originated(evt):
            logger.debug(f"Ignoring own {evt.kind} #{evt.event_id}")
            return None
        if not self._remember(evt.event_id):
            logger.debug(f"Ignoring duplicate {evt.kind} #{evt.event_id}")
            return None

        handler = {
            TASK_CREATED: self._task_created,
            TASK_UPDATED: self._task_updated,
            TASK_DELETED: self._task_deleted,
            BOARD_UPDATED: self._board_updated,
        }.get(evt.kind)
        if handler is None:
            logger.debug(f"Ignoring unknown event kind {evt.kind}")
            return None

        notification = handler(evt.payload)
        if notification is not None:
            self._notify(notification)
        return notification

    def is_self_originated(self, evt: ChangeEvent) -> bool:
        tag = evt.client_id
        return tag is not None and tag == self.client_id

    def _remember(self, event_id) -> bool:
        if not event_id:
            return True
        if event_id in self._seen:
            return False
        self._seen.add(event_id)
        self._seen_order.append(event_id)
        if len(self._seen_order) > SEEN_EVENT_WINDOW:
            self._seen.discard(self._seen_order.popleft())
        return True

    def _notify(self, notification: Notification) -> None:
        for callback in list(self.listeners):
            try:
                callback(notification)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")

    # -- handlers ------------------------------------------------------

    def _task_created(self, payload) -> Optional[Notification]:
        task = MirrorTask.from_payload(payload)
        if not self.mirror.create(task):
            return None
        return Notification("created", task.id, task.title)

    def _task_updated(self, payload) -> Optional[Notification]:
        prior = self.mirror.get(payload.get("id"))
        if prior is None:
            return None

        patch = patch_from_payload(payload)
        patch.pop("id", None)
        updated = replace(prior, **patch)
        self.mirror.update(updated)

        if updated.column != prior.column:
            return Notification("moved", prior.id, updated.title)
        if updated.title != prior.title or updated.description != prior.description:
            return Notification("edited", prior.id, updated.title)
        return None

    def _task_deleted(self, payload) -> Optional[Notification]:
        prior = self.mirror.get(payload.get("id"))
        if prior is None or not self.mirror.delete(prior.id):
            return None
        return Notification("deleted", prior.id, prior.title, level="warning")

    def _board_updated(self, payload) -> None:
        change = payload.get("type")
        if change == "deleted":
            self.mirror.remove_board(payload.get("boardId"))
        elif change in ("created", "updated") and payload.get("board"):
            self.mirror.put_board(MirrorBoard.from_payload(payload["board"]))
        return None
