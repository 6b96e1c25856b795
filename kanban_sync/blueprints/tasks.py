"""Tasks blueprint — /tasks/*

JSON API for tasks. Every mutating route reads the X-Client-Id header and
passes it through so the resulting broadcast carries the same tag.

Route Map:
  POST   /tasks                     — Create task (auto-append if no position)
  GET    /tasks?boardId=...         — List tasks, optionally for one board
  GET    /tasks/board/<board_id>    — List a board's tasks (404 if no board)
  GET    /tasks/<id>                — Single task
  PATCH  /tasks/<id>                — Edit title/description/column/position
  DELETE /tasks/<id>                — Delete task
  PATCH  /tasks/<id>/position       — Move task (drag and drop)
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from kanban_sync.decorators import client_tagged, json_required
from kanban_sync.extensions import db
from kanban_sync.services import task_service
from kanban_sync.services.locks import column_lock

tasks_bp = Blueprint("tasks", __name__, url_prefix="/tasks")

logger = logging.getLogger(__name__)


@tasks_bp.route("", methods=["POST"])
@client_tagged
@json_required
def api_create_task():
    data = g.json
    task = task_service.create_task(
        board_id=data.get("boardId"),
        column=data.get("column"),
        title=data.get("title"),
        description=data.get("description"),
        position=data.get("position"),
        client_id=g.client_id,
    )
    db.session.commit()
    return jsonify(task.to_dict()), 201


@tasks_bp.route("", methods=["GET"])
def api_list_tasks():
    board_id = request.args.get("boardId") or None
    return jsonify([t.to_dict() for t in task_service.list_tasks(board_id)])


@tasks_bp.route("/board/<board_id>", methods=["GET"])
def api_board_tasks(board_id):
    return jsonify([t.to_dict() for t in task_service.list_board_tasks(board_id)])


@tasks_bp.route("/<task_id>", methods=["GET"])
def api_get_task(task_id):
    return jsonify(task_service.get_task(task_id).to_dict())


@tasks_bp.route("/<task_id>", methods=["PATCH"])
@client_tagged
@json_required
def api_update_task(task_id):
    task = task_service.update_task(task_id, g.json, client_id=g.client_id)
    db.session.commit()
    return jsonify(task.to_dict())


@tasks_bp.route("/<task_id>", methods=["DELETE"])
@client_tagged
def api_delete_task(task_id):
    task = task_service.delete_task(task_id, client_id=g.client_id)
    # Build the response before commit; the instance is gone afterwards.
    body = task.to_dict()
    db.session.commit()
    return jsonify(body)


@tasks_bp.route("/<task_id>/position", methods=["PATCH"])
@client_tagged
@json_required
def api_move_task(task_id):
    task_id, column, position = task_service.clean_move_request(
        task_id, g.json.get("column"), g.json.get("position")
    )
    task = task_service.get_task(task_id)

    columns = [column]
    if current_app.config.get("REINDEX_SOURCE_COLUMN"):
        columns.append(task.column)

    with column_lock(
        task.board_id, *columns,
        enabled=current_app.config.get("SERIALIZE_COLUMN_MOVES", False),
    ):
        task = task_service.move_task(task_id, column, position, client_id=g.client_id)
        db.session.commit()
    return jsonify(task.to_dict())
