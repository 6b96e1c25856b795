"""Export service — hands a board's backlog off to the export workflow.

The workflow itself (query tasks, build the CSV, email it) lives behind
EXPORT_WEBHOOK_URL; this module only triggers it.
"""

import logging

import requests
from flask import current_app

from kanban_sync.errors import ExportError
from kanban_sync.services.board_service import get_board

logger = logging.getLogger(__name__)


def trigger_export(board_id, email, fields=None):
    """POST the export request to the webhook.

    Returns:
        {"success": True, "message": ..., "data": <webhook JSON or None>}

    Raises:
        NotFoundError: Board does not exist.
        ExportError: Webhook not configured, unreachable, or non-2xx.
    """
    board = get_board(board_id)

    webhook_url = current_app.config.get("EXPORT_WEBHOOK_URL")
    if not webhook_url:
        logger.error("EXPORT_WEBHOOK_URL is not configured")
        err = ExportError("Export service not configured")
        err.status_code = 503
        raise err

    payload = {"boardId": board.id, "email": email}
    if fields:
        payload["fields"] = list(fields)

    timeout = current_app.config.get("EXPORT_TIMEOUT", 30)
    try:
        resp = requests.post(webhook_url, json=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.error(f"Export webhook unreachable for board {board.id}: {e}")
        raise ExportError("Failed to trigger export workflow") from e

    if not resp.ok:
        logger.error(f"Export webhook failed: {resp.status_code} - {resp.text[:500]}")
        raise ExportError("Failed to trigger export workflow")

    try:
        data = resp.json()
    except ValueError:
        data = None

    logger.info(f"Export triggered for board {board.id} → {email}")
    return {
        "success": True,
        "message": "Export workflow triggered successfully",
        "data": data,
    }
