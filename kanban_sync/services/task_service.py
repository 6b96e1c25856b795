"""Task service — create, edit, move, delete, cascade delete.

Functions flush but do NOT commit — the caller commits. Change events are
queued on the session and only broadcast once that commit succeeds, so
every position write of a move lands (and is announced) as one unit.

Ordering rules:
    move    destination column comes out dense 0..n-1 (positions.allocate);
            the source column keeps its gap unless REINDEX_SOURCE_COLUMN
    create  without a position appends at max(position) + 1, gaps included
    edit    last-write-wins on the given fields, no re-indexing
    delete  leaves the vacated position empty

All title/description input is stripped of HTML (sanitize.sanitize_text).
"""

import logging
import uuid
from datetime import datetime, timezone

from flask import current_app

from kanban_sync.errors import NotFoundError, ValidationError
from kanban_sync.extensions import broadcaster, db
from kanban_sync.models.board import Board
from kanban_sync.models.task import Task
from kanban_sync.services import positions
from kanban_sync.services.broadcaster import TASK_CREATED, TASK_DELETED, TASK_UPDATED
from kanban_sync.services.sanitize import sanitize_text

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "column", "position")


# ─── Validation ──────────────────────────────────────────────────

def require_id(value, label):
    """Reject anything that is not a uuid string before hitting the store."""
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {label} id: {value!r}")


def _clean_title(title):
    title = sanitize_text(title)
    if not title:
        raise ValidationError("Title is required.")
    if len(title) > Task.TITLE_MAX:
        raise ValidationError(f"Title cannot exceed {Task.TITLE_MAX} characters.")
    return title


def _clean_description(description):
    description = sanitize_text(description) if description is not None else ""
    if len(description) > Task.DESCRIPTION_MAX:
        raise ValidationError(
            f"Description cannot exceed {Task.DESCRIPTION_MAX} characters."
        )
    return description


def _clean_column(column):
    if not isinstance(column, str) or not column.strip():
        raise ValidationError("Column is required.")
    return column.strip()


def _clean_int(value, label):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer.")
    return value


def _clean_position(value):
    value = _clean_int(value, "Position")
    if value < 0:
        raise ValidationError("Position cannot be negative.")
    return value


# ─── Reads ───────────────────────────────────────────────────────

def get_task(task_id, fresh=False):
    """Load one task; fresh=True re-reads the row over any cached copy."""
    task_id = require_id(task_id, "task")
    task = db.session.get(Task, task_id, populate_existing=fresh)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found.")
    return task


def _get_board(board_id):
    board = db.session.get(Board, board_id)
    if board is None:
        raise NotFoundError(f"Board {board_id} not found.")
    return board


def list_tasks(board_id=None):
    """All tasks (optionally one board's), ordered by column then position."""
    query = Task.query
    if board_id is not None:
        query = query.filter_by(board_id=require_id(board_id, "board"))
    return query.order_by(Task.column, Task.position, Task.created_at).all()


def list_board_tasks(board_id):
    board_id = require_id(board_id, "board")
    _get_board(board_id)
    return (
        Task.query
        .filter_by(board_id=board_id)
        .order_by(Task.position, Task.created_at)
        .all()
    )


def column_snapshot(board_id, column, exclude_id=None):
    """Live, ordered contents of one column."""
    query = Task.query.populate_existing().filter_by(board_id=board_id, column=column)
    if exclude_id is not None:
        query = query.filter(Task.id != exclude_id)
    return query.order_by(Task.position, Task.created_at, Task.id).all()


# ─── Mutations ───────────────────────────────────────────────────

def create_task(board_id, column, title, description=None, position=None, client_id=None):
    """Create a task.

    Args:
        board_id: Board UUID string.
        column: Column id; must be one of the board's columns.
        title: 1-200 chars after sanitization.
        description: Optional, up to 1000 chars.
        position: Explicit position (>= 0) or None to append at the end.
        client_id: Originating-client tag echoed in the broadcast.

    Returns:
        The created Task (flushed, not committed).

    Raises:
        ValidationError: On bad input or unknown column.
        NotFoundError: If the board does not exist.
    """
    board_id = require_id(board_id, "board")
    column = _clean_column(column)
    title = _clean_title(title)
    description = _clean_description(description)
    if position is not None:
        position = _clean_position(position)

    board = _get_board(board_id)
    if not board.has_column(column):
        raise ValidationError(f"Column '{column}' does not exist on board {board_id}.")

    if position is None:
        max_pos = (
            db.session.query(db.func.max(Task.position))
            .filter_by(board_id=board_id, column=column)
            .scalar()
        )
        position = max_pos + 1 if max_pos is not None else 0

    now = datetime.now(timezone.utc)
    task = Task(
        board_id=board_id,
        column=column,
        title=title,
        description=description,
        position=position,
        created_at=now,
        updated_at=now,
    )
    db.session.add(task)
    db.session.flush()

    broadcaster.queue(db.session, TASK_CREATED, task.to_dict(), client_id)
    logger.info(f"Task created: {task.id} in {board_id}/{column}@{position}")
    return task


def update_task(task_id, changes, client_id=None):
    """Edit title/description/column/position (last write wins).

    Only fields whose value actually changed are written and broadcast;
    an edit that changes nothing emits nothing.
    """
    task_id = require_id(task_id, "task")
    if not isinstance(changes, dict):
        raise ValidationError("Invalid request.")
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"id", "boardId"}
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    cleaned = {}
    if "title" in changes:
        cleaned["title"] = _clean_title(changes["title"])
    if "description" in changes:
        cleaned["description"] = _clean_description(changes["description"])
    if "column" in changes:
        cleaned["column"] = _clean_column(changes["column"])
    if "position" in changes:
        cleaned["position"] = _clean_position(changes["position"])

    task = get_task(task_id)
    if "column" in cleaned and cleaned["column"] != task.column:
        board = _get_board(task.board_id)
        if not board.has_column(cleaned["column"]):
            raise ValidationError(
                f"Column '{cleaned['column']}' does not exist on board {task.board_id}."
            )

    diff = {
        key: value for key, value in cleaned.items()
        if getattr(task, key) != value
    }
    if not diff:
        return task

    for key, value in diff.items():
        setattr(task, key, value)
    task.updated_at = datetime.now(timezone.utc)
    db.session.flush()

    payload = {"id": task.id, "boardId": task.board_id, "updatedAt": task.updated_at.isoformat()}
    payload.update(diff)
    broadcaster.queue(db.session, TASK_UPDATED, payload, client_id)
    return task


def clean_move_request(task_id, column, position):
    """Shape-check a move before any store access."""
    return (
        require_id(task_id, "task"),
        _clean_column(column),
        _clean_int(position, "Position"),
    )


def move_task(task_id, column, position, client_id=None):
    """Move a task to *position* in *column* (drag and drop).

    validating → computing → persisting → broadcasting:
        - the task must exist and the column must belong to its board
        - the destination snapshot is read now, not taken from the request
        - every changed sibling position plus the moved task is written
        - one task.updated per changed sibling, then one for the moved task

    *position* may be any integer; it is clamped to [0, len(column)].
    Moving a task onto its own column and position writes nothing.
    """
    task_id, column, requested = clean_move_request(task_id, column, position)

    task = get_task(task_id, fresh=True)
    source_column = task.column
    if column != source_column:
        board = _get_board(task.board_id)
        if not board.has_column(column):
            raise ValidationError(f"Column '{column}' does not exist on board {task.board_id}.")

    siblings = column_snapshot(task.board_id, column, exclude_id=task.id)
    allocation = positions.allocate(
        [positions.Slot(t.id, t.position) for t in siblings],
        positions.Slot(task.id, task.position),
        requested,
        same_column=(column == source_column),
    )
    if allocation.is_noop:
        logger.debug(f"Move of {task.id} to {column}@{requested} is a no-op")
        return task

    now = datetime.now(timezone.utc)
    updates = []
    by_id = {t.id: t for t in siblings}
    for sibling_id, new_position in allocation.changed.items():
        sibling = by_id.get(sibling_id)
        if sibling is None:
            continue
        sibling.position = new_position
        sibling.updated_at = now
        updates.append(sibling)

    task.column = column
    task.position = allocation.effective
    task.updated_at = now

    if column != source_column and current_app.config.get("REINDEX_SOURCE_COLUMN"):
        updates.extend(_compact_column(task.board_id, source_column, now))

    db.session.flush()

    for sibling in updates:
        broadcaster.queue(db.session, TASK_UPDATED, {
            "id": sibling.id,
            "boardId": sibling.board_id,
            "position": sibling.position,
            "updatedAt": now.isoformat(),
        }, client_id)
    broadcaster.queue(db.session, TASK_UPDATED, {
        "id": task.id,
        "boardId": task.board_id,
        "column": task.column,
        "position": task.position,
        "updatedAt": now.isoformat(),
    }, client_id)

    logger.info(
        f"Task moved: {task.id} {source_column} → {column}@{task.position} "
        f"({len(updates)} sibling(s) re-indexed)"
    )
    return task


def _compact_column(board_id, column, now):
    remaining = column_snapshot(board_id, column)
    changed = positions.reindex(positions.Slot(t.id, t.position) for t in remaining)
    touched = []
    for t in remaining:
        if t.id in changed:
            t.position = changed[t.id]
            t.updated_at = now
            touched.append(t)
    return touched


def delete_task(task_id, client_id=None):
    """Delete a task. Returns the removed Task for response building.

    The column it leaves is not re-indexed.
    """
    task = get_task(task_id)
    payload = {"id": task.id, "boardId": task.board_id}
    db.session.delete(task)
    db.session.flush()

    broadcaster.queue(db.session, TASK_DELETED, payload, client_id)
    logger.info(f"Task deleted: {payload['id']}")
    return task


def delete_tasks_for_board(board_id, client_id=None):
    """Remove every task of *board_id* in one statement.

    Queues one task.deleted per task. Returns the number removed.
    """
    board_id = require_id(board_id, "board")
    task_ids = [
        row.id for row in
        db.session.query(Task.id).filter_by(board_id=board_id).all()
    ]
    for tid in task_ids:
        broadcaster.queue(db.session, TASK_DELETED, {"id": tid, "boardId": board_id}, client_id)

    if task_ids:
        Task.query.filter_by(board_id=board_id).delete(synchronize_session="fetch")
        db.session.flush()
    logger.info(f"Deleted {len(task_ids)} task(s) for board {board_id}")
    return len(task_ids)
