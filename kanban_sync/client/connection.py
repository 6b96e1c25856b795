"""Real-time connections for the client.

A connection is an owned resource: it connects lazily on first use, is
torn down explicitly with close() (or a ``with`` block), and is handed to
the EventReconciler instead of living in a module-level global.

    HubConnection     subscribes straight to an in-process ChangeBroadcaster
    StreamConnection  reads the server's /events Server-Sent Events stream

After a connection is lost, events may have been missed; ``lost`` is set
and the owner is expected to re-fetch full state before reconnecting.
"""

import json
import logging
from typing import Optional

import requests
import sseclient

from kanban_sync.services.broadcaster import ChangeEvent

logger = logging.getLogger(__name__)


class EventConnection:
    """Base class: lazy connect, receive one event at a time, explicit close."""

    def __init__(self) -> None:
        self.lost = False

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    def connect(self) -> "EventConnection":
        raise NotImplementedError

    def receive(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None if none is available within *timeout*."""
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        return self.connect()

    def __exit__(self, *exc):
        self.close()


class HubConnection(EventConnection):
    def __init__(self, hub) -> None:
        super().__init__()
        self._hub = hub
        self._subscription = None

    @property
    def connected(self) -> bool:
        return self._subscription is not None

    def connect(self) -> "HubConnection":
        if self._subscription is None:
            self._subscription = self._hub.subscribe()
            self.lost = False
        return self

    def receive(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        self.connect()
        return self._subscription.get(timeout=timeout)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


HEARTBEAT_EVENT = "heartbeat"


def to_change_event(message) -> Optional[ChangeEvent]:
    """ChangeEvent for one parsed SSE message.

    Heartbeats and frames that cannot be decoded give None, so a reader
    gets a chance to look up between events.
    """
    if message.event == HEARTBEAT_EVENT:
        return None
    try:
        return ChangeEvent(int(message.id or 0), message.event, json.loads(message.data))
    except ValueError:
        logger.warning(f"Discarding malformed {message.event} frame")
        return None


class StreamConnection(EventConnection):
    def __init__(self, base_url: str, session: Optional[requests.Session] = None,
                 read_timeout: float = 60.0) -> None:
        super().__init__()
        self.url = f"{base_url.rstrip('/')}/events"
        self._session = session or requests.Session()
        self._read_timeout = read_timeout
        self._response = None
        self._messages = None

    @property
    def connected(self) -> bool:
        return self._response is not None

    def connect(self) -> "StreamConnection":
        if self._response is None:
            logger.info(f"Connecting to event stream {self.url}")
            resp = self._session.get(
                self.url,
                stream=True,
                headers={"Accept": "text/event-stream"},
                timeout=(10, self._read_timeout),
            )
            try:
                resp.raise_for_status()
            except requests.HTTPError:
                resp.close()
                raise
            self._response = resp
            client = sseclient.SSEClient(resp.iter_content(chunk_size=None))
            self._messages = client.events()
            self.lost = False
        return self

    def receive(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        # Blocking is bounded by the read timeout and by server heartbeats.
        try:
            self.connect()
            message = next(self._messages)
        except StopIteration:
            logger.warning("Event stream ended by server")
        except requests.RequestException as e:
            logger.warning(f"Event stream lost: {e}")
        else:
            return to_change_event(message)
        self.lost = True
        self.close()
        return None

    def close(self) -> None:
        if self._response is not None:
            self._response.close()
            self._response = None
            self._messages = None
            logger.info("Event stream closed")
