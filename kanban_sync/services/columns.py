"""Column normalization — ingress adapter for board column lists.

Boards have been stored with several column shapes over time:

    ["To Do", "Doing"]                                  plain titles
    [{"id": "todo", "title": "To Do"}]                  id + title
    [{"_id": "...", "name": "Doing", "position": 1}]    document style

Everything past this module works on the canonical shape only:
``{"id": str, "title": str, "position": int}`` sorted by position.
"""

import re

DEFAULT_COLUMNS = [
    {"id": "0-to-do", "title": "To Do", "position": 0},
    {"id": "1-in-progress", "title": "In Progress", "position": 1},
    {"id": "2-done", "title": "Done", "position": 2},
]


def _slug(title):
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def _column_id(index, title):
    return f"{index}-{_slug(title)}"


def normalize_column(raw, index):
    """Coerce one raw column entry into the canonical dict."""
    if isinstance(raw, str):
        return {"id": _column_id(index, raw), "title": raw, "position": index}

    raw = raw if isinstance(raw, dict) else {}
    title = raw.get("title") or raw.get("name") or f"Column {index + 1}"
    position = raw.get("position")
    if not isinstance(position, int) or isinstance(position, bool):
        position = index
    column_id = raw.get("id") or raw.get("_id") or _column_id(index, title)
    return {"id": str(column_id), "title": str(title), "position": position}


def normalize_columns(columns):
    """Canonical, position-sorted column list. Empty input → defaults."""
    if not isinstance(columns, (list, tuple)) or not columns:
        return [dict(c) for c in DEFAULT_COLUMNS]
    normalized = [normalize_column(col, i) for i, col in enumerate(columns)]
    return sorted(normalized, key=lambda c: c["position"])


def column_ids(columns):
    return [c["id"] for c in normalize_columns(columns)]
