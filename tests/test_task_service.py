"""Tests for the task store: move, create, edit, delete, cascade delete.

Covers:
- Reorder within a column (dense result, one event per changed task)
- Cross-column moves (destination dense, source keeps its gap)
- Optional source-column re-indexing
- No-op moves (zero writes, zero events)
- Clamping of out-of-range positions
- Append-on-create (max + 1, gaps preserved)
- NotFound / validation before any store access
"""

from unittest.mock import patch

import pytest
from sqlalchemy import update

from conftest import is_dense, make_task
from kanban_sync.errors import NotFoundError, ValidationError
from kanban_sync.extensions import broadcaster
from kanban_sync.models.task import Task
from kanban_sync.services import task_service
from kanban_sync.services.broadcaster import TASK_CREATED, TASK_DELETED, TASK_UPDATED

MISSING_ID = "00000000-0000-4000-8000-000000000000"


# ─── Helpers ───────────────────────────────────────────────

def _positions(board_id, column):
    """{title: position} for one column, straight from the database."""
    rows = Task.query.filter_by(board_id=board_id, column=column).all()
    return {t.title: t.position for t in rows}


# ─── Move ──────────────────────────────────────────────────

class TestMoveWithinColumn:

    def test_move_last_to_top(self, db_session, seed_data, events):
        task = task_service.move_task(seed_data["c_id"], "doing", 0, client_id="client-a")
        db_session.commit()

        assert task.position == 0
        assert _positions(seed_data["board_id"], "doing") == {"A": 1, "B": 2, "C": 0}

        published = events.drain()
        assert [e.kind for e in published] == [TASK_UPDATED] * 3
        assert [e.payload["id"] for e in published] == [
            seed_data["a_id"], seed_data["b_id"], seed_data["c_id"],
        ]
        # Moved task's event is last and carries the column.
        assert published[-1].payload["column"] == "doing"
        assert published[-1].payload["position"] == 0
        assert "column" not in published[0].payload
        assert all(e.client_id == "client-a" for e in published)

    def test_move_down_only_touches_shifted_tasks(self, db_session, seed_data, events):
        task_service.move_task(seed_data["a_id"], "doing", 1)
        db_session.commit()

        assert _positions(seed_data["board_id"], "doing") == {"A": 1, "B": 0, "C": 2}
        ids = [e.payload["id"] for e in events.drain()]
        assert ids == [seed_data["b_id"], seed_data["a_id"]]

    def test_noop_move_writes_nothing(self, db_session, seed_data, events):
        task = task_service.move_task(seed_data["b_id"], "doing", 1)

        assert task.position == 1
        assert not db_session.dirty
        assert broadcaster.pending(db_session) == []
        db_session.commit()
        assert events.drain() == []

    def test_noop_after_clamp(self, db_session, seed_data, events):
        task_service.move_task(seed_data["c_id"], "doing", 500)
        db_session.commit()

        assert _positions(seed_data["board_id"], "doing") == {"A": 0, "B": 1, "C": 2}
        assert events.drain() == []

    def test_reorder_after_task_left_column(self, db_session, seed_data, events):
        board_id = seed_data["board_id"]
        task_service.move_task(seed_data["a_id"], "done", 0)
        db_session.commit()
        events.drain()

        task = task_service.move_task(seed_data["b_id"], "doing", 1)
        db_session.commit()

        assert task.position == 1
        assert _positions(board_id, "doing") == {"C": 0, "B": 1}
        assert [e.payload["id"] for e in events.drain()] == [
            seed_data["c_id"], seed_data["b_id"],
        ]

    def test_reads_rows_written_behind_the_session(self, db_session, seed_data, events):
        a = db_session.get(Task, seed_data["a_id"])
        b = db_session.get(Task, seed_data["b_id"])
        assert (a.position, b.position) == (0, 1)

        # Another worker swaps A and B; the loaded objects still say A@0, B@1.
        for task_id, position in ((seed_data["b_id"], 0), (seed_data["a_id"], 1)):
            db_session.execute(
                update(Task).where(Task.id == task_id).values(position=position)
                .execution_options(synchronize_session=False)
            )

        task = task_service.move_task(seed_data["b_id"], "doing", 1)
        db_session.commit()

        assert task.position == 1
        assert _positions(seed_data["board_id"], "doing") == {"A": 0, "B": 1, "C": 2}
        assert [e.payload["id"] for e in events.drain()] == [
            seed_data["a_id"], seed_data["b_id"],
        ]

    def test_repairs_gappy_column(self, db_session, seed_data):
        board_id = seed_data["board_id"]
        make_task(db_session, board_id, "done", "X", 4)
        make_task(db_session, board_id, "done", "Y", 9)
        z = make_task(db_session, board_id, "done", "Z", 15)
        db_session.commit()

        task_service.move_task(z.id, "done", 0)
        db_session.commit()

        assert _positions(board_id, "done") == {"Z": 0, "X": 1, "Y": 2}


class TestMoveAcrossColumns:

    def test_into_empty_column_leaves_source_gap(self, db_session, seed_data, events):
        board_id = seed_data["board_id"]

        task = task_service.move_task(seed_data["a_id"], "done", 0)
        db_session.commit()

        assert task.column == "done"
        assert task.position == 0
        assert _positions(board_id, "done") == {"A": 0}
        assert _positions(board_id, "doing") == {"B": 1, "C": 2}

        published = events.drain()
        assert len(published) == 1
        assert published[0].payload["column"] == "done"

    def test_reindex_source_column_option(self, app, db_session, seed_data, events, monkeypatch):
        monkeypatch.setitem(app.config, "REINDEX_SOURCE_COLUMN", True)
        board_id = seed_data["board_id"]

        task_service.move_task(seed_data["a_id"], "done", 0)
        db_session.commit()

        assert _positions(board_id, "doing") == {"B": 0, "C": 1}
        ids = {e.payload["id"] for e in events.drain()}
        assert ids == {seed_data["a_id"], seed_data["b_id"], seed_data["c_id"]}

    @pytest.mark.parametrize("requested,clamped", [(-5, 0), (10000, 3)])
    def test_clamp_matches_bounds(self, db_session, seed_data, requested, clamped):
        board_id = seed_data["board_id"]
        x = make_task(db_session, board_id, "done", "X", 0)
        db_session.commit()

        task = task_service.move_task(x.id, "doing", requested)
        db_session.commit()

        assert task.position == clamped
        positions = _positions(board_id, "doing")
        assert positions["X"] == clamped
        assert is_dense(positions.values())

    def test_unknown_column_rejected(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="does not exist"):
            task_service.move_task(seed_data["a_id"], "archive", 0)
        assert broadcaster.pending(db_session) == []

    def test_destination_dense_after_every_move(self, db_session, seed_data):
        board_id = seed_data["board_id"]
        moves = [
            (seed_data["a_id"], "done", 0),
            (seed_data["b_id"], "done", 0),
            (seed_data["c_id"], "done", 1),
            (seed_data["a_id"], "done", 2),
            (seed_data["b_id"], "doing", 0),
            (seed_data["c_id"], "doing", 7),
        ]
        for task_id, column, position in moves:
            task_service.move_task(task_id, column, position)
            db_session.commit()
            assert is_dense(_positions(board_id, column).values())


class TestMoveErrors:

    def test_missing_task_raises_not_found(self, db_session, seed_data, events):
        with pytest.raises(NotFoundError):
            task_service.move_task(MISSING_ID, "doing", 0)

        assert not db_session.dirty
        assert broadcaster.pending(db_session) == []

    def test_not_found_is_lookup_error(self, seed_data):
        with pytest.raises(LookupError):
            task_service.move_task(MISSING_ID, "doing", 0)

    @patch("kanban_sync.services.task_service.get_task")
    def test_malformed_id_rejected_before_lookup(self, mock_get, seed_data):
        with pytest.raises(ValidationError, match="Invalid task id"):
            task_service.move_task("not-a-uuid", "doing", 0)
        mock_get.assert_not_called()

    @patch("kanban_sync.services.task_service.get_task")
    def test_non_integer_position_rejected(self, mock_get, seed_data):
        with pytest.raises(ValidationError, match="integer"):
            task_service.move_task(seed_data["a_id"], "doing", "2")
        with pytest.raises(ValidationError, match="integer"):
            task_service.move_task(seed_data["a_id"], "doing", True)
        mock_get.assert_not_called()


# ─── Create ────────────────────────────────────────────────

class TestCreateTask:

    def test_empty_column_starts_at_zero(self, db_session, seed_data, events):
        task = task_service.create_task(seed_data["board_id"], "done", "D", client_id="client-a")
        db_session.commit()

        assert task.position == 0
        published = events.drain()
        assert len(published) == 1
        assert published[0].kind == TASK_CREATED
        assert published[0].payload["title"] == "D"
        assert published[0].payload["position"] == 0
        assert published[0].client_id == "client-a"

    def test_appends_after_last(self, db_session, seed_data):
        task = task_service.create_task(seed_data["board_id"], "doing", "D")
        assert task.position == 3

    def test_append_keeps_existing_gap(self, db_session, seed_data):
        task_service.delete_task(seed_data["b_id"])
        db_session.commit()

        task = task_service.create_task(seed_data["board_id"], "doing", "D")
        db_session.commit()

        # max + 1, not a compaction of the hole left by B
        assert task.position == 3
        assert _positions(seed_data["board_id"], "doing") == {"A": 0, "C": 2, "D": 3}

    def test_explicit_position_kept(self, db_session, seed_data):
        task = task_service.create_task(seed_data["board_id"], "doing", "D", position=1)
        assert task.position == 1

    def test_sanitizes_html(self, db_session, seed_data):
        task = task_service.create_task(
            seed_data["board_id"], "doing", "<b>Fix</b> login",
            description="<img src=x onerror=alert(1)>Steps",
        )
        assert task.title == "Fix login"
        assert "<" not in task.description

    def test_title_required(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="Title is required"):
            task_service.create_task(seed_data["board_id"], "doing", "<b></b>")

    def test_title_too_long(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="200"):
            task_service.create_task(seed_data["board_id"], "doing", "x" * 201)

    def test_negative_position_rejected(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="negative"):
            task_service.create_task(seed_data["board_id"], "doing", "D", position=-1)

    def test_unknown_board(self, db_session):
        with pytest.raises(NotFoundError):
            task_service.create_task(MISSING_ID, "doing", "D")

    def test_unknown_column(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="does not exist"):
            task_service.create_task(seed_data["board_id"], "later", "D")


# ─── Edit ──────────────────────────────────────────────────

class TestUpdateTask:

    def test_broadcasts_only_changed_fields(self, db_session, seed_data, events):
        task = task_service.update_task(
            seed_data["a_id"], {"title": "A2", "description": ""}, client_id="client-b",
        )
        db_session.commit()

        assert task.title == "A2"
        (evt,) = events.drain()
        assert evt.kind == TASK_UPDATED
        assert evt.payload["title"] == "A2"
        assert "description" not in evt.payload
        assert evt.payload["boardId"] == seed_data["board_id"]
        assert evt.client_id == "client-b"

    def test_unchanged_edit_is_silent(self, db_session, seed_data, events):
        task_service.update_task(seed_data["a_id"], {"title": "A"})
        db_session.commit()
        assert events.drain() == []

    def test_position_edit_does_not_reindex(self, db_session, seed_data):
        task_service.update_task(seed_data["a_id"], {"position": 2})
        db_session.commit()
        assert _positions(seed_data["board_id"], "doing") == {"A": 2, "B": 1, "C": 2}

    def test_rejects_unknown_fields(self, db_session, seed_data):
        with pytest.raises(ValidationError, match="createdAt"):
            task_service.update_task(seed_data["a_id"], {"createdAt": "yesterday"})

    def test_missing_task(self, db_session):
        with pytest.raises(NotFoundError):
            task_service.update_task(MISSING_ID, {"title": "Nope"})


# ─── Delete ────────────────────────────────────────────────

class TestDeleteTask:

    def test_returns_deleted_task_and_leaves_gap(self, db_session, seed_data, events):
        task = task_service.delete_task(seed_data["a_id"], client_id="client-a")
        db_session.commit()

        assert task.title == "A"
        assert _positions(seed_data["board_id"], "doing") == {"B": 1, "C": 2}
        (evt,) = events.drain()
        assert evt.kind == TASK_DELETED
        assert evt.payload == {
            "id": seed_data["a_id"],
            "boardId": seed_data["board_id"],
            "clientId": "client-a",
        }

    def test_missing_task(self, db_session):
        with pytest.raises(NotFoundError):
            task_service.delete_task(MISSING_ID)

    def test_delete_tasks_for_board(self, db_session, seed_data, events):
        count = task_service.delete_tasks_for_board(seed_data["board_id"])
        db_session.commit()

        assert count == 3
        assert Task.query.count() == 0
        published = events.drain()
        assert len(published) == 3
        assert {e.payload["id"] for e in published} == {
            seed_data["a_id"], seed_data["b_id"], seed_data["c_id"],
        }

    def test_delete_tasks_for_empty_board(self, db_session, seed_data, events):
        task_service.delete_tasks_for_board(seed_data["board_id"])
        db_session.commit()
        events.drain()

        assert task_service.delete_tasks_for_board(seed_data["board_id"]) == 0
