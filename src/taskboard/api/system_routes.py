"""Liveness, cache diagnostics and the realtime WebSocket endpoint."""

from fastapi import APIRouter, FastAPI, WebSocket

from taskboard.api.task_handlers import handle_cache_status, handle_health


def register_system_routes(app_router: APIRouter, ctx) -> None:
    @app_router.get("/health/ping")
    def ping():
        return handle_health(ctx)

    @app_router.get("/cache/status")
    def cache_status():
        return handle_cache_status(ctx)


def register_websocket(app: FastAPI, ctx) -> None:
    """
    Clients connect to /ws and receive ``update`` frames until they leave.
    Inbound messages are read only to notice disconnects.
    """

    @app.websocket("/ws")
    async def realtime(ws: WebSocket):
        await ws.accept()
        ctx.broadcaster.add_client(ws)
        try:
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            ctx.broadcaster.remove_client(ws)
