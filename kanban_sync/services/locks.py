"""Per-column move serialization.

Two moves into the same (board, column) can otherwise read the same
snapshot and commit overlapping positions. Holding this lock from the
snapshot read through commit rules that out within one process. It does
nothing across processes; the next move into the column repairs any
leftover duplicate or gap.

A lock lives in the registry only while someone holds or waits for it.
"""

import threading
from contextlib import ExitStack, contextmanager

_registry_lock = threading.Lock()
# (board_id, column) -> [lock, holders + waiters]
_column_locks = {}


@contextmanager
def _hold(board_id, column):
    key = (board_id, column)
    with _registry_lock:
        entry = _column_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _column_locks[key]


@contextmanager
def column_lock(board_id, *columns, enabled=True):
    """Hold the locks for every named column of *board_id*.

    Locks are taken in sorted order so two moves between the same pair of
    columns cannot deadlock.
    """
    if not enabled:
        yield
        return
    with ExitStack() as stack:
        for column in sorted(set(columns)):
            stack.enter_context(_hold(board_id, column))
        yield
