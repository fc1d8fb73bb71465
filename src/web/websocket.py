"""WebSocket endpoint pushing session snapshots."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from src.session import AnnotationSession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections for the session event channel."""

    def __init__(self):
        self.event_clients: list[WebSocket] = []
        self._tasks: set[asyncio.Task] = set()

    async def connect_events(self, ws: WebSocket) -> None:
        await ws.accept()
        self.event_clients.append(ws)
        logger.info("Event client connected (%d total)", len(self.event_clients))

    def disconnect_events(self, ws: WebSocket) -> None:
        if ws in self.event_clients:
            self.event_clients.remove(ws)
        logger.info("Event client disconnected (%d remaining)",
                    len(self.event_clients))

    def track(self, task: asyncio.Task) -> None:
        """Hold a reference to a broadcast until it finishes."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def broadcast_event(self, data: dict) -> None:
        """Broadcast a JSON event to all event clients."""
        message = json.dumps(data)
        disconnected = []
        for ws in self.event_clients:
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.append(ws)
        for ws in disconnected:
            self.disconnect_events(ws)


def create_ws_router(session: AnnotationSession) -> APIRouter:
    router = APIRouter()
    manager = ConnectionManager()

    # Register event callback on the session
    def on_event(data: dict):
        """Schedule a broadcast on the running event loop."""
        if not manager.event_clients:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        manager.track(loop.create_task(manager.broadcast_event(data)))

    session.add_event_callback(on_event)

    @router.websocket("/ws/events")
    async def ws_events(ws: WebSocket):
        """JSON session snapshots via WebSocket."""
        await manager.connect_events(ws)
        try:
            await ws.send_text(json.dumps({"type": "session", "session": session.snapshot()}))
            while True:
                # Keep connection alive; snapshots pushed via broadcast
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Events WebSocket error")
        finally:
            manager.disconnect_events(ws)

    return router
