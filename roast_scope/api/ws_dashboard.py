"""Dashboard WebSocket — pushes live roast state to connected frontends.

Architecture:
    device  →  transport  →  RoastController  →  tick / transition
                                                     ↓
    FE  ←  /ws/dashboard  ←  DashboardManager broadcasts an update

A client receives the full snapshot (all samples and events) once on
connect; after that each update carries the session summary, the live
reading and, for sampling ticks, only the newest point.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from roast_scope.services.controller import RoastController

logger = logging.getLogger(__name__)


class DashboardManager:
    """Tracks connected frontend WebSocket clients and broadcasts updates."""

    def __init__(self, controller: RoastController) -> None:
        self._controller = controller
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    # ── Client management ────────────────────────────────────────────

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self._clients.add(ws)
        logger.info("Dashboard client connected (%d total)", len(self._clients))
        await ws.send_text(json.dumps({
            "type": "snapshot",
            **self._controller.snapshot(include_logs=True),
        }, default=str))

    async def disconnect(self, ws: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(ws)
        logger.info("Dashboard client disconnected (%d remaining)", len(self._clients))

    @property
    def client_count(self) -> int:
        return len(self._clients)

    # ── Broadcast ────────────────────────────────────────────────────

    def build_update(self, reason: str) -> dict[str, Any]:
        payload = {"type": reason, **self._controller.snapshot(include_logs=False)}
        samples = self._controller.session.samples
        if reason == "sample" and samples:
            payload["point"] = samples[-1].model_dump(by_alias=True)
        if reason in ("event", "dropped", "drop_undone", "imported", "started", "reset"):
            payload["events"] = [e.model_dump() for e in self._controller.session.events]
        return payload

    async def on_update(self, reason: str) -> None:
        """Controller listener.  Runs in a background task."""
        if not self._clients:
            return
        try:
            await self._broadcast(self.build_update(reason))
        except Exception as exc:
            logger.error("Dashboard broadcast failed: %s", exc, exc_info=True)

    async def _broadcast(self, payload: dict[str, Any]) -> None:
        """Send payload to all connected dashboard clients."""
        message = json.dumps(payload, default=str)
        dead: set[WebSocket] = set()

        async with self._lock:
            clients = set(self._clients)

        for ws in clients:
            try:
                await ws.send_text(message)
            except Exception:
                dead.add(ws)

        if dead:
            async with self._lock:
                self._clients -= dead
            logger.info("Removed %d dead dashboard client(s)", len(dead))


# ── WebSocket endpoint ───────────────────────────────────────────────────


def create_dashboard_router(manager: DashboardManager) -> APIRouter:
    """Factory that creates the dashboard WebSocket endpoint."""

    router = APIRouter()

    @router.websocket("/ws/dashboard")
    async def dashboard_ws(websocket: WebSocket) -> None:
        await manager.connect(websocket)
        try:
            # FE mostly listens; it may send heartbeats
            while True:
                data = await websocket.receive_text()
                if data.strip().lower() == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            await manager.disconnect(websocket)

    return router
