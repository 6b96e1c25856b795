"""HTTP client for the kanban_sync JSON API.

Every mutating request is tagged with the session's client id in the
X-Client-Id header; the server echoes it in the resulting broadcast so
this session's reconciler can drop its own events.
"""

import logging
import uuid
from typing import Optional

import requests

from kanban_sync.decorators import CLIENT_ID_HEADER
from kanban_sync.errors import KanbanError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


def new_client_id() -> str:
    """Per-session originating-client tag."""
    return str(uuid.uuid4())


class ApiError(KanbanError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class KanbanApiClient:
    def __init__(self, base_url: str, client_id: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id or new_client_id()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method, path, json=None, params=None, tagged=False):
        headers = {CLIENT_ID_HEADER: self.client_id} if tagged else {}
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method, url, json=json, params=params,
                headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(f"Request failed: {e}") from e

        if resp.ok:
            return resp.json() if resp.content else None

        try:
            message = resp.json().get("error") or resp.reason
        except ValueError:
            message = resp.text or resp.reason
        if resp.status_code == 404:
            raise NotFoundError(message)
        if resp.status_code == 400:
            raise ValidationError(message)
        raise ApiError(message, status_code=resp.status_code)

    # -- boards --------------------------------------------------------

    def get_boards(self):
        return self._request("GET", "/boards")

    def get_board(self, board_id):
        return self._request("GET", f"/boards/{board_id}")

    def create_board(self, title, description=None, columns=None):
        body = {"title": title}
        if description is not None:
            body["description"] = description
        if columns is not None:
            body["columns"] = columns
        return self._request("POST", "/boards", json=body, tagged=True)

    def delete_board(self, board_id):
        return self._request("DELETE", f"/boards/{board_id}", tagged=True)

    # -- tasks ---------------------------------------------------------

    def get_tasks(self, board_id=None):
        params = {"boardId": board_id} if board_id else None
        return self._request("GET", "/tasks", params=params)

    def create_task(self, board_id, column, title, description=None, position=None):
        body = {"boardId": board_id, "column": column, "title": title}
        if description is not None:
            body["description"] = description
        if position is not None:
            body["position"] = position
        return self._request("POST", "/tasks", json=body, tagged=True)

    def update_task(self, task_id, **changes):
        return self._request("PATCH", f"/tasks/{task_id}", json=changes, tagged=True)

    def move_task(self, task_id, column, position):
        return self._request(
            "PATCH", f"/tasks/{task_id}/position",
            json={"column": column, "position": position}, tagged=True,
        )

    def delete_task(self, task_id):
        return self._request("DELETE", f"/tasks/{task_id}", tagged=True)

    def export_backlog(self, board_id, email, fields=None):
        body = {"boardId": board_id, "email": email}
        if fields:
            body["fields"] = list(fields)
        return self._request("POST", "/exports/backlog", json=body)
