"""
Domain errors for the queue core.

Every error carries a stable ``code`` and the HTTP status it is rendered
with, so the API layer maps them with a single exception handler.
"""

from typing import Optional


class QueueError(Exception):
    """Base class for all domain errors."""

    code = "queue_error"
    status_code = 400
    retryable = False
    default_message = "Queue operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(QueueError):
    code = "validation_error"
    status_code = 422
    default_message = "Invalid input"


class NotFound(QueueError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class SessionAlreadyRunning(QueueError):
    code = "session_already_running"
    status_code = 409
    default_message = "A queue session is already running"


class SessionNotRunning(QueueError):
    code = "session_not_running"
    status_code = 412
    default_message = "Queue session is not running"


class InvalidStatusTransition(QueueError):
    code = "invalid_status_transition"
    status_code = 409
    default_message = "Invalid queue entry status transition"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move queue entry from '{current}' to '{requested}'")


class StorageUnavailable(QueueError):
    """The only error class callers may retry."""

    code = "storage_unavailable"
    status_code = 503
    retryable = True
    default_message = "Storage is unavailable, please retry"


class ArchiveFailed(StorageUnavailable):
    code = "archive_failed"
    default_message = "Queue session could not be archived; it is still running, retry stop"
