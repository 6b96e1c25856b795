"""Board session — one client's view of a board, wired end to end.

Owns the mirror, the API client, the event connection and the reconciler.
A move is applied to the mirror first, then sent to the server; the
server's answer for the moved task replaces the optimistic copy.

If the request fails the optimistic state stays as it is. The error is
logged and re-raised; the caller decides whether to reload().
"""

import logging

from kanban_sync.client.api import KanbanApiClient
from kanban_sync.client.connection import StreamConnection
from kanban_sync.client.mirror import LocalMirror, MirrorBoard, MirrorTask
from kanban_sync.client.reconciler import EventReconciler
from kanban_sync.errors import KanbanError

logger = logging.getLogger(__name__)


class BoardSession:
    def __init__(self, api: KanbanApiClient, connection=None, mirror=None) -> None:
        self.api = api
        self.mirror = mirror or LocalMirror()
        self.connection = connection or StreamConnection(api.base_url, session=api.session)
        self.reconciler = EventReconciler(self.mirror, self.connection, api.client_id)
        self.reconciler.on_resync(self.reload)
        self.board_id = None

    @property
    def client_id(self) -> str:
        return self.api.client_id

    def load(self, board_id=None) -> None:
        """Full fetch of boards and tasks (optionally one board's tasks)."""
        self.board_id = board_id
        boards = [MirrorBoard.from_payload(b) for b in self.api.get_boards()]
        tasks = [MirrorTask.from_payload(t) for t in self.api.get_tasks(board_id)]
        self.mirror.replace_all(tasks, boards)
        logger.info(f"Loaded {len(boards)} board(s), {len(tasks)} task(s)")

    def reload(self) -> None:
        self.load(self.board_id)

    def pump(self, max_events=None, timeout=0) -> int:
        return self.reconciler.pump(max_events=max_events, timeout=timeout)

    # -- mutations -----------------------------------------------------

    def move_task(self, task_id, column, position) -> MirrorTask:
        self.mirror.reorder(task_id, column, position)
        try:
            result = self.api.move_task(task_id, column, position)
        except KanbanError as e:
            logger.warning(f"Move of {task_id} failed, local order left as is: {e}")
            raise
        task = MirrorTask.from_payload(result)
        self.mirror.update(task)
        return task

    def create_task(self, board_id, column, title, description=None, position=None) -> MirrorTask:
        result = self.api.create_task(board_id, column, title, description, position)
        task = MirrorTask.from_payload(result)
        self.mirror.create(task)
        return task

    def edit_task(self, task_id, **changes) -> MirrorTask:
        task = MirrorTask.from_payload(self.api.update_task(task_id, **changes))
        self.mirror.update(task)
        return task

    def delete_task(self, task_id) -> None:
        self.api.delete_task(task_id)
        self.mirror.delete(task_id)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
