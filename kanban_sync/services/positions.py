"""Position allocator — pure ordering arithmetic for one column.

No database access here; the task store and the client mirror both feed
plain (task_id, position) slots in and apply the result themselves.

    allocate()  insert one task into a destination column at a requested
                index; the column comes out dense (0..n) and only the
                positions that changed are reported.
    reindex()   renumber a column 0..n-1 in its current order.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence


@dataclass(frozen=True)
class Slot:
    task_id: str
    position: int


@dataclass
class Allocation:
    effective: int
    positions: Dict[str, int] = field(default_factory=dict)
    changed: Dict[str, int] = field(default_factory=dict)
    is_noop: bool = False


def clamp_position(requested: int, length: int) -> int:
    """Clamp a requested index into [0, length]."""
    return max(0, min(requested, length))


def sort_slots(slots: Iterable[Slot]) -> List[Slot]:
    # sorted() is stable, so ties keep the caller's order
    return sorted(slots, key=lambda s: s.position)


def allocate(
    existing: Sequence[Slot],
    moved: Slot,
    requested: int,
    same_column: bool,
) -> Allocation:
    """Place *moved* at *requested* in a column holding *existing*.

    *existing* must not contain the moved task. Ranks, not stored
    positions, decide the outcome: rank < effective keeps its rank,
    rank >= effective shifts to rank + 1, the moved task takes effective.
    """
    ordered = sort_slots(existing)
    effective = clamp_position(requested, len(ordered))

    positions = {}
    changed = {}
    for rank, slot in enumerate(ordered):
        new_position = rank if rank < effective else rank + 1
        positions[slot.task_id] = new_position
        if new_position != slot.position:
            changed[slot.task_id] = new_position

    # Nothing moves: the task already sits at its rank and no sibling shifts.
    if same_column and not changed and effective == moved.position:
        return Allocation(effective=effective, is_noop=True)

    positions[moved.task_id] = effective
    changed[moved.task_id] = effective
    return Allocation(effective=effective, positions=positions, changed=changed)


def reindex(slots: Iterable[Slot]) -> Dict[str, int]:
    """Dense renumbering of a column; returns only the changed entries."""
    return {
        slot.task_id: rank
        for rank, slot in enumerate(sort_slots(slots))
        if slot.position != rank
    }