"""
Route decorators for the JSON API.

- client_tagged: reads the originating-client tag (X-Client-Id) into
  g.client_id so store functions can echo it in their broadcasts.
- json_required: rejects requests without a JSON object body and exposes
  the parsed body as g.json.
"""

from functools import wraps

from flask import g, jsonify, request

CLIENT_ID_HEADER = "X-Client-Id"


def client_tagged(f):
    """Expose the request's originating-client tag as g.client_id (or None)."""

    @wraps(f)
    def decorated(*args, **kwargs):
        g.client_id = (request.headers.get(CLIENT_ID_HEADER) or "").strip() or None
        return f(*args, **kwargs)

    return decorated


def json_required(f):
    """Require a JSON object body."""

    @wraps(f)
    def decorated(*args, **kwargs):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify(error="Invalid request."), 400
        g.json = data
        return f(*args, **kwargs)

    return decorated
