"""Boards blueprint — /boards/*

Route Map:
  POST   /boards         — Create board (columns optional, any legacy shape)
  GET    /boards         — List boards
  GET    /boards/<id>    — Single board
  PATCH  /boards/<id>    — Update title/description
  DELETE /boards/<id>    — Delete board and cascade its tasks
"""

from flask import Blueprint, g, jsonify

from kanban_sync.decorators import client_tagged, json_required
from kanban_sync.extensions import db
from kanban_sync.services import board_service

boards_bp = Blueprint("boards", __name__, url_prefix="/boards")


@boards_bp.route("", methods=["POST"])
@client_tagged
@json_required
def api_create_board():
    data = g.json
    board = board_service.create_board(
        title=data.get("title"),
        description=data.get("description"),
        columns=data.get("columns"),
        client_id=g.client_id,
    )
    db.session.commit()
    return jsonify(board.to_dict()), 201


@boards_bp.route("", methods=["GET"])
def api_list_boards():
    return jsonify([b.to_dict() for b in board_service.list_boards()])


@boards_bp.route("/<board_id>", methods=["GET"])
def api_get_board(board_id):
    return jsonify(board_service.get_board(board_id).to_dict())


@boards_bp.route("/<board_id>", methods=["PATCH"])
@client_tagged
@json_required
def api_update_board(board_id):
    board = board_service.update_board(board_id, g.json, client_id=g.client_id)
    db.session.commit()
    return jsonify(board.to_dict())


@boards_bp.route("/<board_id>", methods=["DELETE"])
@client_tagged
def api_delete_board(board_id):
    board, deleted = board_service.delete_board(board_id, client_id=g.client_id)
    body = {"board": board.to_dict(), "deletedTasks": deleted}
    db.session.commit()
    return jsonify(body)
