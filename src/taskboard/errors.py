"""
Error taxonomy for task store operations.

Every error carries a stable ``code`` and the HTTP status the REST layer
answers with. Plain ``OSError`` from the filesystem is not wrapped; the
handlers map it to ``WRITE_FAILED``.
"""


class TaskboardError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500


class ConcurrentWriteError(TaskboardError):
    """Another mutation holds the writer lock. Safe to retry."""

    code = "CONCURRENT_WRITE"
    http_status = 409


class TaskNotFoundError(TaskboardError):
    code = "NOT_FOUND"
    http_status = 404


class SectionNotFoundError(TaskboardError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidRequestError(TaskboardError):
    """Input rejected before any file I/O."""

    code = "BAD_REQUEST"
    http_status = 400


class UnknownFieldError(InvalidRequestError):
    pass


class ContentValidationError(TaskboardError):
    """Post-mutation content failed the sanity check; the file was restored."""

    code = "WRITE_FAILED"
    http_status = 500
