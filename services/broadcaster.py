"""Real-time fan-out of readings to connected dashboard viewers."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

RAIN_ALERT_EVENT = "rain_alert"


class EventBroadcaster:

    def __init__(self) -> None:
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("Viewer connected", extra={"connection_count": self.connection_count})

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("Viewer disconnected", extra={"connection_count": self.connection_count})

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        """Send ``payload`` to every viewer; returns how many sends succeeded."""
        async with self._lock:
            connections = list(self._connections)

        message = {"event": event, "data": payload}
        delivered = 0
        stale: list[WebSocket] = []
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as exc:  # noqa: BLE001 - any send failure means the viewer is gone
                logger.info("Dropping viewer after failed send", extra={"reason": str(exc)})
                stale.append(connection)
                continue
            delivered += 1

        if stale:
            async with self._lock:
                self._connections.difference_update(stale)
        return delivered


@lru_cache
def build_default_broadcaster() -> EventBroadcaster:
    return EventBroadcaster()
