"""REST API routes for reading and mutating tasks."""

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from taskboard.api.responses import api_response, error_from_exception
from taskboard.api.task_handlers import (
    handle_task_create,
    handle_task_list,
    handle_task_move,
    handle_task_update,
)

ACTION_SOURCE = "actions/tasks"


class TaskMoveBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId", min_length=1)
    from_column: str = Field(alias="from", min_length=1)
    to_column: str = Field(alias="to", min_length=1)


class TaskCreateBody(BaseModel):
    title: str = Field(min_length=1)
    column: Optional[str] = None
    project: Optional[str] = None
    priority: Optional[str] = None
    agent: Optional[str] = None
    estimate: Optional[str] = None


class TaskUpdateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId", min_length=1)
    field: str = Field(min_length=1)
    value: str


def register_task_routes(app_router: APIRouter, ctx) -> None:
    """Attach task REST routes that use the shared context."""

    @app_router.get("/tasks")
    async def list_tasks(
        project: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
    ):
        try:
            result = await handle_task_list(ctx, project=project, status=status)
        except Exception as e:
            return error_from_exception(e, "tasks", default_code="PARSE_ERROR")
        return api_response(result["tasks"], result["source"], result["ttl"], result["cached"])

    @app_router.post("/actions/tasks/move")
    async def move_task(body: TaskMoveBody):
        try:
            result = await handle_task_move(
                ctx,
                task_id=body.task_id,
                from_column=body.from_column,
                to_column=body.to_column,
            )
        except Exception as e:
            return error_from_exception(e, ACTION_SOURCE)
        return api_response(result, ACTION_SOURCE, 0)

    @app_router.post("/actions/tasks/create")
    async def create_task(body: TaskCreateBody):
        try:
            result = await handle_task_create(ctx, **body.model_dump())
        except Exception as e:
            return error_from_exception(e, ACTION_SOURCE)
        return api_response(result, ACTION_SOURCE, 0)

    @app_router.post("/actions/tasks/update")
    async def update_task(body: TaskUpdateBody):
        try:
            result = await handle_task_update(
                ctx, task_id=body.task_id, field=body.field, value=body.value
            )
        except Exception as e:
            return error_from_exception(e, ACTION_SOURCE)
        return api_response(result, ACTION_SOURCE, 0)
