"""FastAPI application factory for the task dashboard API."""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from mcp.server.fastmcp import FastMCP
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard.api.responses import api_error
from taskboard.api.system_routes import register_system_routes, register_websocket
from taskboard.api.task_routes import register_task_routes
from taskboard.tools import register_task_tools
from taskboard.watcher import FileWatcher

log = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(ctx, enable_watchers: bool = True) -> FastAPI:
    """
    Build and return a FastAPI app wired to the given AppContext.

    With ``enable_watchers`` the lifespan starts the file watcher and the
    cache sweep thread, and stops both on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        watcher = None
        if enable_watchers:
            ctx.cache.start_cleanup(ctx.settings.cache_cleanup_interval)
            watcher = FileWatcher(
                ctx.cache,
                ctx.broadcaster,
                ctx.todo_path,
                ctx.workspace_dir,
                polling=ctx.settings.watch_polling,
                poll_interval=ctx.settings.poll_interval,
            )
            watcher.start()
        try:
            yield
        finally:
            if watcher is not None:
                watcher.stop()
            ctx.cache.stop_cleanup()

    app = FastAPI(
        title="taskboard",
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        return api_error("BAD_REQUEST", _validation_message(exc), request.url.path, 400)

    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and request.url.path.startswith("/api"):
            return api_error("NOT_FOUND", f"Unknown endpoint: {request.url.path}", "router", 404)
        return await http_exception_handler(request, exc)

    api = APIRouter(prefix="/api")
    register_task_routes(api, ctx)
    register_system_routes(api, ctx)
    app.include_router(api)
    register_websocket(app, ctx)

    if ctx.settings.mcp_enabled:
        mcp = FastMCP("taskboard")
        register_task_tools(mcp, ctx)
        app.mount("/mcp", mcp.sse_app("/mcp"))
        log.info("MCP tools mounted at /mcp")

    return app
