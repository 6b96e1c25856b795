"""Tests for the change broadcaster: commit-gated publish, fan-out, drops."""

import pytest
from sqlalchemy import text

from kanban_sync.extensions import broadcaster
from kanban_sync.services.broadcaster import (
    TASK_CREATED,
    TASK_UPDATED,
    ChangeBroadcaster,
    ChangeEvent,
)


class TestPublish:

    def test_fan_out_to_every_subscriber(self):
        hub = ChangeBroadcaster(queue_size=8)
        with hub.subscribe() as first, hub.subscribe() as second:
            evt = hub.publish(TASK_CREATED, {"id": "t1"}, client_id="client-a")

            assert first.get(timeout=0) == evt
            assert second.get(timeout=0) == evt
            assert evt.payload == {"id": "t1", "clientId": "client-a"}
            assert evt.client_id == "client-a"

    def test_untagged_event_has_no_client_id(self):
        hub = ChangeBroadcaster()
        evt = hub.publish(TASK_UPDATED, {"id": "t1"})
        assert evt.client_id is None
        assert "clientId" not in evt.payload

    def test_event_ids_increase(self):
        hub = ChangeBroadcaster()
        first = hub.publish(TASK_UPDATED, {"id": "t1"})
        second = hub.publish(TASK_UPDATED, {"id": "t1"})
        assert second.event_id == first.event_id + 1

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            ChangeBroadcaster().publish("task.exploded", {})

    def test_full_queue_drops_instead_of_blocking(self):
        hub = ChangeBroadcaster()
        with hub.subscribe(maxsize=2) as slow:
            for i in range(5):
                hub.publish(TASK_UPDATED, {"id": f"t{i}"})

            assert slow.dropped == 3
            assert [e.payload["id"] for e in slow.drain()] == ["t0", "t1"]

    def test_closed_subscription_receives_nothing(self):
        hub = ChangeBroadcaster()
        sub = hub.subscribe()
        sub.close()

        hub.publish(TASK_UPDATED, {"id": "t1"})
        assert hub.subscriber_count == 0
        assert sub.get(timeout=0) is None

    def test_get_times_out(self):
        with ChangeBroadcaster().subscribe() as sub:
            assert sub.get(timeout=0.01) is None


class TestTransactionalQueue:

    def test_nothing_published_before_commit(self, db_session, events):
        db_session.execute(text("SELECT 1"))
        broadcaster.queue(db_session, TASK_UPDATED, {"id": "t1"}, "client-a")

        assert events.get(timeout=0) is None
        assert len(broadcaster.pending(db_session)) == 1

        db_session.commit()
        evt = events.get(timeout=0)
        assert evt.kind == TASK_UPDATED
        assert evt.client_id == "client-a"
        assert broadcaster.pending(db_session) == []

    def test_rollback_discards(self, db_session, events):
        db_session.execute(text("SELECT 1"))
        broadcaster.queue(db_session, TASK_UPDATED, {"id": "t1"})
        db_session.rollback()
        db_session.commit()

        assert events.drain() == []

    def test_queue_rejects_unknown_kind(self, db_session):
        with pytest.raises(ValueError):
            broadcaster.queue(db_session, "nope", {})


class TestSseFrame:

    def test_frame_layout(self):
        evt = ChangeEvent(7, TASK_UPDATED, {"id": "t1", "position": 2})
        assert evt.to_sse() == (
            "id: 7\n"
            "event: task.updated\n"
            'data: {"id":"t1","position":2}\n\n'
        )
