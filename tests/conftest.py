"""Shared test fixtures for the kanban_sync test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no rate limits)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: one board with a "doing" column holding A@0, B@1, C@2 and an
  empty "done" column
- events: a broadcaster subscription, closed after the test
"""

import pytest

from kanban_sync import create_app
from kanban_sync.extensions import broadcaster, db as _db
from kanban_sync.models.board import Board
from kanban_sync.models.task import Task


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def events():
    """Subscription that sees every event published during the test."""
    with broadcaster.subscribe() as sub:
        yield sub


def is_dense(positions):
    """True when positions are exactly 0..n-1."""
    values = sorted(positions)
    return values == list(range(len(values)))


def make_task(db_session, board_id, column, title, position, **kwargs):
    """Insert a task directly, bypassing the store (no events)."""
    task = Task(
        board_id=board_id,
        column=column,
        title=title,
        position=position,
        description=kwargs.pop("description", ""),
        **kwargs,
    )
    db_session.add(task)
    db_session.flush()
    return task


@pytest.fixture
def seed_data(app, db_session):
    """Seed one board with two columns and three tasks.

    Returns plain ids so tests can use them after the objects expire.
    """
    board = Board(
        title="Sprint Board",
        description="Seeded for tests",
        columns=[
            {"id": "doing", "title": "Doing", "position": 0},
            {"id": "done", "title": "Done", "position": 1},
        ],
    )
    db_session.add(board)
    db_session.flush()

    a = make_task(db_session, board.id, "doing", "A", 0)
    b = make_task(db_session, board.id, "doing", "B", 1)
    c = make_task(db_session, board.id, "doing", "C", 2)
    db_session.commit()

    return {
        "board": board,
        "board_id": board.id,
        "a_id": a.id,
        "b_id": b.id,
        "c_id": c.id,
    }
