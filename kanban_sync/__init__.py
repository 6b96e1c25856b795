import os
import logging

import click
from flask import Flask, jsonify, request

from kanban_sync.config import config_by_name
from kanban_sync.errors import KanbanError
from kanban_sync.extensions import db, migrate, limiter, broadcaster


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    broadcaster.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from kanban_sync import models  # noqa: F401

    # --- Register blueprints ---
    from kanban_sync.blueprints.boards import boards_bp
    from kanban_sync.blueprints.tasks import tasks_bp
    from kanban_sync.blueprints.events import events_bp
    from kanban_sync.blueprints.exports import exports_bp

    app.register_blueprint(boards_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(exports_bp)

    @app.route("/health")
    def health():
        return jsonify(ok=True, subscribers=broadcaster.subscriber_count)

    # --- Error handlers ---
    @app.errorhandler(KanbanError)
    def kanban_error(e):
        db.session.rollback()
        return jsonify(error=str(e)), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(error="Method not allowed"), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(error="Internal server error"), 500

    # --- CLI commands ---
    register_cli(app)

    # --- CORS for the browser client ---
    @app.after_request
    def add_cors_headers(response):
        """Allow the configured front-end origin, including the client tag header."""
        origin = app.config.get("CORS_ORIGIN")
        if origin and request.headers.get("Origin") == origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Client-Id"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-board")
    @click.option("--title", default="Demo Board", help="Board title")
    @click.option("--tasks", "task_count", default=3, help="Tasks per column")
    def seed_board(title, task_count):
        """Create a demo board with a few tasks in every column.

        Usage:
            flask seed-board
            flask seed-board --title "Sprint 12" --tasks 5
        """
        from kanban_sync.services import board_service, task_service

        board = board_service.create_board(title=title, description="Seeded demo board")
        for column in board.columns:
            for i in range(task_count):
                task_service.create_task(
                    board_id=board.id,
                    column=column["id"],
                    title=f"{column['title']} #{i + 1}",
                )
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Board:   {board.title} (id: {board.id})")
        click.echo(f"  Columns: {', '.join(c['id'] for c in board.columns)}")
        click.echo(f"  Tasks:   {task_count * len(board.columns)}")
        click.echo("=" * 60)

    @app.cli.command("reset-boards")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def reset_boards(yes):
        """Delete every board and its tasks (broadcasts the deletes)."""
        from kanban_sync.services import board_service

        boards = board_service.list_boards()
        if not boards:
            click.echo("No boards to delete.")
            return
        if not yes:
            click.confirm(f"Delete {len(boards)} board(s) and all their tasks?", abort=True)

        total = 0
        for board in boards:
            _, deleted = board_service.delete_board(board.id)
            total += deleted
        db.session.commit()
        click.echo(f"Deleted {len(boards)} board(s), {total} task(s).")
