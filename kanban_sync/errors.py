"""Domain errors shared by the store, the HTTP layer and the client.

NotFoundError and ValidationError also subclass the builtin lookup/value
errors so callers that only know about ValueError keep working.
"""


class KanbanError(Exception):
    """Base class for every error raised by kanban_sync."""

    status_code = 500


class NotFoundError(KanbanError, LookupError):
    """A task or board id does not exist. No writes were performed."""

    status_code = 404


class ValidationError(KanbanError, ValueError):
    """Input rejected before touching the store. Message is user-facing."""

    status_code = 400


class ExportError(KanbanError):
    """The export webhook is not configured or did not accept the request."""

    status_code = 502
