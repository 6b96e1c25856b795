"""Optimistic local mirror — the client's in-memory replica of a board.

State transitions are pure functions over tuples of immutable MirrorTask
values. LocalMirror only holds the current state and tells subscribers
when it changes. Everything runs on the client's single event loop, so
there is no locking.

reorder_locally() applies the same allocator as the server but
re-indexes both sides of a cross-column move. The server leaves the source
column alone, so the two can disagree about the source column until the
next full reload.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from kanban_sync.services import positions
from kanban_sync.services.columns import normalize_columns

logger = logging.getLogger(__name__)

# wire name → MirrorTask attribute
_WIRE_FIELDS = {
    "id": "id",
    "boardId": "board_id",
    "title": "title",
    "description": "description",
    "column": "column",
    "position": "position",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _parse_timestamp(value):
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class MirrorTask:
    id: str
    board_id: str
    title: str
    column: str
    position: int
    description: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "MirrorTask":
        """Build from the wire projection (tolerates ``_id``)."""
        data = patch_from_payload(payload)
        data.setdefault("id", payload.get("_id"))
        data.setdefault("description", "")
        return cls(**data)


def patch_from_payload(payload: dict) -> dict:
    """Only the task attributes present in *payload*, as MirrorTask kwargs."""
    patch = {}
    for wire, attr in _WIRE_FIELDS.items():
        if wire in payload:
            value = payload[wire]
            if attr in ("created_at", "updated_at"):
                value = _parse_timestamp(value)
            elif attr == "description" and value is None:
                value = ""
            patch[attr] = value
    return patch


@dataclass(frozen=True)
class MirrorBoard:
    id: str
    title: str
    description: str = ""
    columns: Tuple[dict, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict) -> "MirrorBoard":
        return cls(
            id=payload.get("id") or payload.get("_id"),
            title=payload.get("title", ""),
            description=payload.get("description") or "",
            columns=tuple(normalize_columns(payload.get("columns"))),
        )


Tasks = Tuple[MirrorTask, ...]


# ─── Pure transitions ────────────────────────────────────────────

def apply_created(tasks: Tasks, task: MirrorTask) -> Tasks:
    if any(t.id == task.id for t in tasks):
        return tasks
    return tasks + (task,)


def apply_updated(tasks: Tasks, task: MirrorTask) -> Tasks:
    return tuple(task if t.id == task.id else t for t in tasks)


def apply_deleted(tasks: Tasks, task_id: str) -> Tasks:
    return tuple(t for t in tasks if t.id != task_id)


def _column_slots(tasks: Iterable[MirrorTask]) -> List[positions.Slot]:
    return [positions.Slot(t.id, t.position) for t in tasks]


def reorder_locally(tasks: Tasks, task_id: str, column: str, position: int) -> Tasks:
    """Move *task_id* to *position* in *column*, renumbering both columns.

    Only tasks of the moved task's board in the source and destination
    columns are touched. Unknown task or no-op move returns *tasks* as is.
    """
    moving = next((t for t in tasks if t.id == task_id), None)
    if moving is None:
        return tasks

    board_id = moving.board_id
    source = moving.column
    remaining = [t for t in tasks if t.id != task_id]
    destination = [t for t in remaining if t.board_id == board_id and t.column == column]

    allocation = positions.allocate(
        _column_slots(destination),
        positions.Slot(moving.id, moving.position),
        position,
        same_column=(source == column),
    )
    if allocation.is_noop:
        return tasks

    new_positions: Dict[str, int] = dict(allocation.positions)
    if source != column:
        source_tasks = [t for t in remaining if t.board_id == board_id and t.column == source]
        new_positions.update(positions.reindex(_column_slots(source_tasks)))

    result = []
    for t in tasks:
        if t.id == task_id:
            result.append(replace(t, column=column, position=allocation.effective))
        elif t.id in new_positions and new_positions[t.id] != t.position:
            result.append(replace(t, position=new_positions[t.id]))
        else:
            result.append(t)
    return tuple(result)


def column_tasks(tasks: Tasks, board_id: str, column: str) -> List[MirrorTask]:
    """Tasks of one column in display order."""
    return sorted(
        (t for t in tasks if t.board_id == board_id and t.column == column),
        key=lambda t: t.position,
    )


# ─── State container ─────────────────────────────────────────────

class LocalMirror:
    """Holds the client's tasks and boards and notifies on every change."""

    def __init__(self, tasks: Iterable[MirrorTask] = (), boards: Iterable[MirrorBoard] = ()) -> None:
        self.tasks: Tasks = tuple(tasks)
        self.boards: Dict[str, MirrorBoard] = {b.id: b for b in boards}
        self.subscribers: List[Callable] = []

    def subscribe(self, callback: Callable) -> Callable:
        """Register ``callback(mirror)``; returns an unsubscribe function."""
        self.subscribers.append(callback)
        return lambda: self.subscribers.remove(callback) if callback in self.subscribers else None

    def _emit(self) -> None:
        for callback in list(self.subscribers):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Mirror subscriber failed: {e}")

    def _set_tasks(self, tasks: Tasks) -> bool:
        if tasks is self.tasks:
            return False
        self.tasks = tasks
        self._emit()
        return True

    def get(self, task_id: str) -> Optional[MirrorTask]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def column(self, board_id: str, column: str) -> List[MirrorTask]:
        return column_tasks(self.tasks, board_id, column)

    # -- transitions -------------------------------------------------

    def replace_all(self, tasks: Iterable[MirrorTask], boards: Iterable[MirrorBoard] = None) -> None:
        """Full re-fetch result; replaces everything."""
        if boards is not None:
            self.boards = {b.id: b for b in boards}
        self.tasks = tuple(tasks)
        self._emit()

    def create(self, task: MirrorTask) -> bool:
        return self._set_tasks(apply_created(self.tasks, task))

    def update(self, task: MirrorTask) -> bool:
        return self._set_tasks(apply_updated(self.tasks, task))

    def delete(self, task_id: str) -> bool:
        if self.get(task_id) is None:
            return False
        return self._set_tasks(apply_deleted(self.tasks, task_id))

    def reorder(self, task_id: str, column: str, position: int) -> bool:
        return self._set_tasks(reorder_locally(self.tasks, task_id, column, position))

    def put_board(self, board: MirrorBoard) -> None:
        self.boards[board.id] = board
        self._emit()

    def remove_board(self, board_id: str) -> None:
        removed = self.boards.pop(board_id, None)
        tasks = tuple(t for t in self.tasks if t.board_id != board_id)
        if removed is not None or len(tasks) != len(self.tasks):
            self.tasks = tasks
            self._emit()
