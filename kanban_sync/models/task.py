"""Task model.

``position`` is a zero-based rank inside (board_id, column). It is only
guaranteed dense for the destination column of a completed move; creates,
edits and deletes leave gaps alone.
"""

import uuid

from kanban_sync.extensions import db


class Task(db.Model):
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_board_column_position", "board_id", "column", "position"),
    )

    TITLE_MAX = 200
    DESCRIPTION_MAX = 1000

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    board_id = db.Column(
        db.String(36),
        db.ForeignKey("boards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    column = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        """Wire projection used by the API and by task.created events."""
        return {
            "id": self.id,
            "boardId": self.board_id,
            "title": self.title,
            "description": self.description or "",
            "column": self.column,
            "position": self.position,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task {self.title[:40]} {self.column}@{self.position}>"
