"""Board service — create, update, delete (with task cascade).

Functions flush but do NOT commit — the caller commits. Columns are fixed
once a board exists; only title and description can change.
"""

import logging
from datetime import datetime, timezone

from kanban_sync.errors import NotFoundError, ValidationError
from kanban_sync.extensions import broadcaster, db
from kanban_sync.models.board import Board
from kanban_sync.services import task_service
from kanban_sync.services.broadcaster import BOARD_UPDATED
from kanban_sync.services.columns import normalize_columns
from kanban_sync.services.sanitize import sanitize_text
from kanban_sync.services.task_service import require_id

logger = logging.getLogger(__name__)


def _clean_title(title):
    title = sanitize_text(title)
    if not title or len(title) < Board.TITLE_MIN:
        raise ValidationError(f"Title must be at least {Board.TITLE_MIN} characters.")
    if len(title) > Board.TITLE_MAX:
        raise ValidationError(f"Title cannot exceed {Board.TITLE_MAX} characters.")
    return title


def _clean_description(description):
    description = sanitize_text(description) if description is not None else ""
    if len(description) > Board.DESCRIPTION_MAX:
        raise ValidationError(
            f"Description cannot exceed {Board.DESCRIPTION_MAX} characters."
        )
    return description


def _clean_columns(columns):
    if columns is not None and not isinstance(columns, (list, tuple)):
        raise ValidationError("Columns must be a list.")
    normalized = normalize_columns(columns)
    ids = [c["id"] for c in normalized]
    if len(set(ids)) != len(ids):
        raise ValidationError("Column ids must be unique.")
    return normalized


def get_board(board_id):
    board_id = require_id(board_id, "board")
    board = db.session.get(Board, board_id)
    if board is None:
        raise NotFoundError(f"Board {board_id} not found.")
    return board


def list_boards():
    return Board.query.order_by(Board.created_at, Board.title).all()


def create_board(title, description=None, columns=None, client_id=None):
    """Create a board. *columns* may use any historical shape."""
    title = _clean_title(title)
    description = _clean_description(description)
    columns = _clean_columns(columns)

    now = datetime.now(timezone.utc)
    board = Board(
        title=title,
        description=description,
        columns=columns,
        created_at=now,
        updated_at=now,
    )
    db.session.add(board)
    db.session.flush()

    broadcaster.queue(db.session, BOARD_UPDATED, {
        "type": "created",
        "board": board.to_dict(),
    }, client_id)
    logger.info(f"Board created: {board.id} ({len(columns)} columns)")
    return board


def update_board(board_id, changes, client_id=None):
    """Change title and/or description. Columns are immutable."""
    board_id = require_id(board_id, "board")
    if not isinstance(changes, dict):
        raise ValidationError("Invalid request.")
    if "columns" in changes:
        raise ValidationError("Board columns cannot be changed after creation.")

    cleaned = {}
    if "title" in changes:
        cleaned["title"] = _clean_title(changes["title"])
    if "description" in changes:
        cleaned["description"] = _clean_description(changes["description"])

    board = get_board(board_id)
    diff = {k: v for k, v in cleaned.items() if getattr(board, k) != v}
    if not diff:
        return board

    for key, value in diff.items():
        setattr(board, key, value)
    board.updated_at = datetime.now(timezone.utc)
    db.session.flush()

    broadcaster.queue(db.session, BOARD_UPDATED, {
        "type": "updated",
        "board": board.to_dict(),
    }, client_id)
    return board


def delete_board(board_id, client_id=None):
    """Delete a board and all of its tasks.

    Task delete events are queued before the board delete event.

    Returns:
        (board, deleted_task_count)
    """
    board = get_board(board_id)
    deleted = task_service.delete_tasks_for_board(board.id, client_id=client_id)

    db.session.delete(board)
    db.session.flush()

    broadcaster.queue(db.session, BOARD_UPDATED, {
        "type": "deleted",
        "boardId": board.id,
    }, client_id)
    logger.info(f"Board deleted: {board.id} ({deleted} task(s) removed)")
    return board, deleted
