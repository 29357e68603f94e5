"""
Task handler functions shared by MCP tools and REST API.

Handlers return plain dicts and raise TaskboardError subclasses (or OSError)
on failure; each surface renders those its own way. Every mutation
invalidates the "tasks" cache entry, broadcasts a summary on the "tasks"
channel and leaves an audit record, success or not.
"""

import logging
import time
from typing import Optional

from taskboard.audit import log_audit
from taskboard.cache import CACHE_TTL
from taskboard.errors import InvalidRequestError, UnknownFieldError
from taskboard.models import SECTION_KEYS, TASK_STATUSES, ParsedTodo
from taskboard.parsers import parse_todo_file_async
from taskboard.utils.dates import now_iso
from taskboard.writers import UPDATABLE_FIELDS

log = logging.getLogger(__name__)

TASKS_CACHE_KEY = "tasks"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _require(**values) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise InvalidRequestError(f"Missing required fields: {', '.join(missing)}")


def _check_column(column: str) -> None:
    if column not in SECTION_KEYS:
        raise InvalidRequestError(
            f"Unknown column: {column}. Allowed: {', '.join(SECTION_KEYS)}"
        )


async def _after_write(ctx, summary: dict) -> None:
    ctx.cache.invalidate(TASKS_CACHE_KEY)
    await ctx.broadcaster.broadcast("tasks", summary)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def handle_task_list(
    ctx,
    *,
    project: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """
    Parsed board, from cache when fresh and unfiltered.

    An unknown ``status`` raises InvalidRequestError before any read.

    Returns a dict with ``tasks`` (wire form, keyed by section) plus the
    ``source``/``ttl``/``cached`` metadata for the response envelope.
    """
    if status and status not in TASK_STATUSES:
        raise InvalidRequestError(
            f"Unknown status: {status}. Allowed: {', '.join(sorted(TASK_STATUSES))}"
        )

    ttl = CACHE_TTL[TASKS_CACHE_KEY]
    if not project and not status:
        hit = ctx.cache.get(TASKS_CACHE_KEY)
        if hit is not None:
            return {"tasks": hit.data, "source": "cache", "ttl": hit.ttl, "cached": True}

    parsed: ParsedTodo = await parse_todo_file_async(ctx.todo_path)
    board = parsed.to_dict()
    ctx.cache.set(TASKS_CACHE_KEY, board, ttl)

    if project or status:
        board = parsed.filtered(project=project, status=status).to_dict()
    return {"tasks": board, "source": "filesystem", "ttl": ttl, "cached": False}


def handle_cache_status(ctx) -> dict:
    return ctx.cache.stats()


def handle_health(ctx) -> dict:
    return {
        "status": "ok",
        "uptime": round(ctx.uptime(), 3),
        "wsClients": ctx.broadcaster.client_count(),
        "timestamp": now_iso(),
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def handle_task_move(ctx, *, task_id: str, from_column: str, to_column: str) -> dict:
    _require(taskId=task_id, **{"from": from_column, "to": to_column})
    _check_column(from_column)
    _check_column(to_column)

    params = {"taskId": task_id, "from": from_column, "to": to_column}
    start = time.monotonic()
    try:
        await ctx.writer.move_task(task_id, from_column, to_column)
    except Exception as exc:
        log_audit("tasks.move", task_id, params, success=False,
                  duration_ms=_elapsed_ms(start), error=str(exc))
        raise
    log_audit("tasks.move", task_id, params, success=True, duration_ms=_elapsed_ms(start))

    await _after_write(ctx, {"action": "move", "taskId": task_id, "from": from_column, "to": to_column})
    return {"success": True, "taskId": task_id, "from": from_column, "to": to_column}


async def handle_task_create(
    ctx,
    *,
    title: str,
    column: Optional[str] = None,
    project: Optional[str] = None,
    priority: Optional[str] = None,
    agent: Optional[str] = None,
    estimate: Optional[str] = None,
) -> dict:
    _require(title=title and title.strip())
    column = column or "backlog"
    _check_column(column)

    params = {
        "title": title,
        "column": column,
        "project": project,
        "priority": priority,
        "agent": agent,
        "estimate": estimate,
    }
    params = {k: v for k, v in params.items() if v is not None}
    start = time.monotonic()
    try:
        task_id = await ctx.writer.create_task(
            title,
            column=column,
            project=project,
            priority=priority,
            agent=agent,
            estimate=estimate,
        )
    except Exception as exc:
        log_audit("tasks.create", title, params, success=False,
                  duration_ms=_elapsed_ms(start), error=str(exc))
        raise
    log_audit("tasks.create", task_id, params, success=True, duration_ms=_elapsed_ms(start))

    await _after_write(ctx, {"action": "create", "taskId": task_id})
    return {"success": True, "taskId": task_id}


async def handle_task_update(ctx, *, task_id: str, field: str, value: str) -> dict:
    _require(taskId=task_id, field=field)
    if value is None:
        raise InvalidRequestError("Missing required fields: value")
    if field not in UPDATABLE_FIELDS:
        raise UnknownFieldError(f"Invalid field: {field}. Allowed: {', '.join(UPDATABLE_FIELDS)}")

    params = {"taskId": task_id, "field": field, "value": value}
    start = time.monotonic()
    try:
        await ctx.writer.update_task_field(task_id, field, value)
    except Exception as exc:
        log_audit("tasks.update", task_id, params, success=False,
                  duration_ms=_elapsed_ms(start), error=str(exc))
        raise
    log_audit("tasks.update", task_id, params, success=True, duration_ms=_elapsed_ms(start))

    await _after_write(ctx, {"action": "update", "taskId": task_id, "field": field})
    return {"success": True, "taskId": task_id, "field": field}
