"""
Task MCP tools.

Core logic lives in the handle_* functions of api.task_handlers (return dicts).
The wrappers here serialize results to JSON strings and turn failures into
``{"error": ..., "code": ...}`` objects.
"""

import json
import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from taskboard.api.task_handlers import (
    handle_cache_status,
    handle_task_create,
    handle_task_list,
    handle_task_move,
    handle_task_update,
)
from taskboard.errors import TaskboardError

log = logging.getLogger(__name__)


def _error(exc: Exception) -> str:
    if isinstance(exc, TaskboardError):
        return json.dumps({"error": str(exc), "code": exc.code})
    log.exception("Task tool failed")
    return json.dumps({"error": str(exc), "code": "WRITE_FAILED"})


def register_task_tools(mcp: FastMCP, ctx) -> None:
    """Register all task-related MCP tools onto the FastMCP instance."""

    @mcp.tool()
    async def task_list(project: Optional[str] = None, status: Optional[str] = None) -> str:
        """
        List the tasks in TODO.md grouped by board column.

        Args:
            project: Only tasks tagged #project
            status: Only tasks with this status: "ready", "backlog",
                    "in-progress", "in-review", "done" or "declined"

        Returns:
            JSON object keyed by column (ready, backlog, inProgress, inReview,
            done, declined), each a list of task objects
        """
        try:
            result = await handle_task_list(ctx, project=project, status=status)
        except Exception as e:
            return _error(e)
        return json.dumps(result["tasks"], indent=2)

    @mcp.tool()
    async def task_move(task_id: str, from_column: str, to_column: str) -> str:
        """
        Move a task to another column.

        Moving to inProgress stamps started:<today>, moving to done ticks the
        box and stamps completed:<today>, moving out of done unticks it.

        Args:
            task_id: Task ID as written in TODO.md (e.g. "t042" or "t042.1")
            from_column: Column the task is currently in (e.g. "backlog")
            to_column: Destination column (e.g. "inProgress")

        Returns:
            JSON confirmation, or an error object
        """
        try:
            result = await handle_task_move(
                ctx, task_id=task_id, from_column=from_column, to_column=to_column
            )
        except Exception as e:
            return _error(e)
        return json.dumps(result, indent=2)

    @mcp.tool()
    async def task_create(
        title: str,
        column: str = "backlog",
        project: Optional[str] = None,
        priority: Optional[str] = None,
        agent: Optional[str] = None,
        estimate: Optional[str] = None,
    ) -> str:
        """
        Add a task to a column. The next free tNNN id is assigned.

        Args:
            title: Task title
            column: Target column (default "backlog")
            project: Written as @project
            priority: P0 to P3
            agent: Written as assignee:<agent>
            estimate: Time estimate without the tilde (e.g. "2h", "30m")

        Returns:
            JSON object with the new taskId
        """
        try:
            result = await handle_task_create(
                ctx,
                title=title,
                column=column,
                project=project,
                priority=priority,
                agent=agent,
                estimate=estimate,
            )
        except Exception as e:
            return _error(e)
        return json.dumps(result, indent=2)

    @mcp.tool()
    async def task_update(task_id: str, field: str, value: str) -> str:
        """
        Change one field of a task line in place.

        Args:
            task_id: Task ID (e.g. "t042")
            field: One of "title", "estimate", "priority", "agent"
            value: New value (estimate without the tilde)

        Returns:
            JSON confirmation, or an error object
        """
        try:
            result = await handle_task_update(ctx, task_id=task_id, field=field, value=value)
        except Exception as e:
            return _error(e)
        return json.dumps(result, indent=2)

    @mcp.tool()
    def cache_status() -> str:
        """Return cache entry count, keys and memory use."""
        return json.dumps(handle_cache_status(ctx), indent=2)
