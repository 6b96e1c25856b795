# Models package — import all models here so Alembic can discover them.

from kanban_sync.models.board import Board  # noqa: F401
from kanban_sync.models.task import Task  # noqa: F401
