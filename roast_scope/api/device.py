"""REST endpoints for the device link.

Path prefix: /api/device
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from roast_scope.services.controller import DeviceBusyError, RoastController
from roast_scope.transports.base import TransportError, TransportUnavailableError
from roast_scope.transports.registry import TransportRegistry, UnknownTransportError

logger = logging.getLogger(__name__)


class ConnectRequest(BaseModel):
    """Which transport to open, with optional per-request overrides."""

    kind: str = Field(..., description="serial | ble | websocket | simulator")
    port: str | None = None
    baudrate: int | None = Field(default=None, gt=0)
    device_name: str | None = None
    url: str | None = None
    target_et: float | None = None

    def options(self) -> dict[str, Any]:
        return self.model_dump(exclude={"kind"}, exclude_none=True)


def create_device_router(controller: RoastController, registry: TransportRegistry) -> APIRouter:
    """Factory that wires device endpoints to the controller + registry."""

    router = APIRouter(prefix="/api/device", tags=["device"])

    @router.get("")
    async def device_status() -> dict[str, Any]:
        return {
            "connected": controller.transport is not None,
            "label": controller.device_label,
            "live": controller.live.to_dict(),
            "kinds": registry.kinds,
            "stats": registry.stats,
        }

    @router.post("/connect")
    async def connect(request: ConnectRequest) -> dict[str, Any]:
        try:
            label = await controller.connect(request.kind, **request.options())
        except DeviceBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except (UnknownTransportError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except TransportUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except TransportError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {
            "status": "connected",
            "label": label,
            "session": controller.snapshot(include_logs=False),
        }

    @router.post("/disconnect")
    async def disconnect() -> dict[str, Any]:
        if not await controller.disconnect():
            raise HTTPException(status_code=409, detail="No device connected")
        return {"status": "disconnected", "session": controller.snapshot(include_logs=False)}

    return router
