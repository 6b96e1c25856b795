"""Board model.

A board owns a fixed, ordered list of columns (stored as JSON in the
canonical {id, title, position} shape) and the tasks placed in them.
Deleting a board removes its tasks through board_service, which also
emits the per-task delete events.
"""

import uuid

from kanban_sync.extensions import db
from kanban_sync.services.columns import column_ids, normalize_columns


class Board(db.Model):
    __tablename__ = "boards"

    TITLE_MIN = 3
    TITLE_MAX = 100
    DESCRIPTION_MAX = 500

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default="")
    columns = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def column_ids(self):
        return column_ids(self.columns)

    def has_column(self, column_id):
        return column_id in self.column_ids

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "columns": normalize_columns(self.columns),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Board {self.title}>"
