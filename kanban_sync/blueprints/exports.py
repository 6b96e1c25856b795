"""Exports blueprint — /exports/*

Route Map:
  POST /exports/backlog — trigger the CSV-by-email export for a board
"""

import logging
import re

from flask import Blueprint, g, jsonify

from kanban_sync.decorators import json_required
from kanban_sync.errors import ValidationError
from kanban_sync.extensions import limiter
from kanban_sync.services import export_service

exports_bp = Blueprint("exports", __name__, url_prefix="/exports")

logger = logging.getLogger(__name__)

# Simple email regex — not exhaustive, just sanity-check
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@exports_bp.route("/backlog", methods=["POST"])
@limiter.limit("5 per hour")
@json_required
def export_backlog():
    """
    Expects: { boardId, email, fields (optional list of strings) }
    Returns: { success, message, data }
    """
    data = g.json
    board_id = data.get("boardId")
    email = (data.get("email") or "").strip()
    fields = data.get("fields")

    errors = []
    if not board_id:
        errors.append("boardId is required.")
    if not email or not EMAIL_RE.match(email):
        errors.append("A valid email is required.")
    if fields is not None and (
        not isinstance(fields, list) or not all(isinstance(f, str) for f in fields)
    ):
        errors.append("fields must be a list of strings.")
    if errors:
        raise ValidationError(" ".join(errors))

    return jsonify(export_service.trigger_export(board_id, email, fields)), 202
