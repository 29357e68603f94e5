"""Audit trail for mutating actions, emitted as one JSON object per log record."""

import json
import logging
import re
from typing import Any, Mapping, Optional

from taskboard.utils.dates import now_iso

log = logging.getLogger("taskboard.audit")

_SECRET_KEY = re.compile(r"token|key|secret|password|credential", re.IGNORECASE)
REDACTED = "[redacted]"


def sanitize_params(params: Mapping[str, Any]) -> dict:
    """Copy of ``params`` with secret-looking keys redacted."""
    return {k: (REDACTED if _SECRET_KEY.search(k) else v) for k, v in params.items()}


def log_audit(
    action: str,
    target: str,
    params: Mapping[str, Any],
    *,
    success: bool,
    duration_ms: int,
    error: Optional[str] = None,
) -> dict:
    entry = {
        "ts": now_iso(),
        "action": action,
        "target": target,
        "params": sanitize_params(params),
        "result": "success" if success else "failure",
        "durationMs": duration_ms,
    }
    if error is not None:
        entry["error"] = error
    try:
        log.info(json.dumps(entry, default=str))
    except (TypeError, ValueError):
        log.warning("Unserializable audit entry for %s %s", action, target)
    return entry
