"""JSON envelopes shared by every REST route."""

import logging
from typing import Any

from fastapi.responses import JSONResponse

from taskboard.errors import TaskboardError
from taskboard.utils.dates import now_iso

log = logging.getLogger(__name__)


def api_response(data: Any, source: str, ttl: float, cached: bool = False) -> JSONResponse:
    return JSONResponse(
        {
            "data": data,
            "meta": {
                "source": source,
                "timestamp": now_iso(),
                "cached": cached,
                "ttl": ttl,
            },
        }
    )


def api_error(code: str, message: str, source: str, status: int = 500) -> JSONResponse:
    return JSONResponse(
        {"error": {"code": code, "message": message, "source": source}},
        status_code=status,
    )


def error_from_exception(exc: Exception, source: str, default_code: str = "WRITE_FAILED") -> JSONResponse:
    """Map a handler failure onto the error envelope."""
    if isinstance(exc, TaskboardError):
        return api_error(exc.code, str(exc), source, exc.http_status)
    log.error("%s failed: %s", source, exc, exc_info=exc)
    return api_error(default_code, str(exc), source, 500)
