"""Fan-out of change notifications to connected WebSocket clients."""

import json
import logging
from typing import Any, Protocol, Set

from taskboard.utils.dates import now_iso

log = logging.getLogger(__name__)


class Client(Protocol):
    async def send_text(self, data: str) -> None: ...


class RealtimeBroadcaster:
    """
    Holds the set of connected clients and pushes ``update`` frames.

    A client whose send fails is dropped on the spot; there is no retry,
    buffering or heartbeat.
    """

    def __init__(self) -> None:
        self._clients: Set[Client] = set()

    def add_client(self, ws: Client) -> None:
        self._clients.add(ws)
        log.info("Client connected (%d total)", len(self._clients))

    def remove_client(self, ws: Client) -> None:
        self._clients.discard(ws)
        log.info("Client disconnected (%d total)", len(self._clients))

    def client_count(self) -> int:
        return len(self._clients)

    async def broadcast(self, channel: str, data: Any) -> None:
        message = json.dumps(
            {
                "type": "update",
                "channel": channel,
                "data": data,
                "timestamp": now_iso(),
            }
        )
        for ws in list(self._clients):
            try:
                await ws.send_text(message)
            except Exception:
                log.debug("Dropping client after failed send", exc_info=True)
                self._clients.discard(ws)
