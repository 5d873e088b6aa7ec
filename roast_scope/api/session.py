"""REST endpoints for the roast session.

Paths (prefix /api/session):
    GET  ""               full snapshot
    POST /start           preheating|roasting → roasting (restart clears logs)
    POST /stop            roasting → finished, drop marked, undo armed
    POST /undo-drop       finished (within grace) → roasting
    POST /reset           any non-idle → preheating|idle
    POST /events/{label}  toggle a milestone while roasting
    GET  /export          CSV attachment
    POST /import          raw file body, ?filename= picks the parser

Transitions that the current state does not allow answer 409 and change
nothing.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from roast_scope.foundation.clock import utc_now
from roast_scope.profile.export import EmptyRoastError
from roast_scope.profile.importer import ImportFormatError
from roast_scope.services.controller import RoastController, RoastInProgressError

logger = logging.getLogger(__name__)


def _conflict(controller: RoastController, action: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=f"Cannot {action} while session is {controller.session.status.value}",
    )


def create_session_router(controller: RoastController) -> APIRouter:
    """Factory that wires the session endpoints to a RoastController."""

    router = APIRouter(prefix="/api/session", tags=["session"])

    @router.get("")
    async def get_session() -> dict[str, Any]:
        return controller.snapshot()

    @router.post("/start")
    async def start_roast() -> dict[str, Any]:
        if not await controller.start_roast():
            raise _conflict(controller, "start a roast")
        return controller.snapshot(include_logs=False)

    @router.post("/stop")
    async def stop_roast() -> dict[str, Any]:
        if not await controller.stop_roast():
            raise _conflict(controller, "drop")
        return controller.snapshot(include_logs=False)

    @router.post("/undo-drop")
    async def undo_drop() -> dict[str, Any]:
        if not await controller.undo_drop():
            raise HTTPException(status_code=409, detail="No drop to undo")
        return controller.snapshot(include_logs=False)

    @router.post("/reset")
    async def reset() -> dict[str, Any]:
        if not await controller.reset():
            raise _conflict(controller, "reset")
        return controller.snapshot(include_logs=False)

    @router.post("/events/{label}")
    async def toggle_event(label: str) -> dict[str, Any]:
        if not await controller.toggle_event(label):
            raise _conflict(controller, f"toggle '{label}'")
        return {
            "events": [e.model_dump() for e in controller.session.events],
            "enabled_labels": controller.session.enabled_labels(),
        }

    @router.get("/export")
    async def export() -> Response:
        try:
            text = controller.export_csv()
        except EmptyRoastError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        filename = f"roast-{utc_now().strftime('%Y%m%d-%H%M%S')}.csv"
        return Response(
            content=text,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @router.post("/import")
    async def import_profile(request: Request, filename: str) -> dict[str, Any]:
        content = await request.body()
        try:
            profile = await controller.import_profile(filename, content)
        except RoastInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ImportFormatError as exc:
            logger.warning("Import of %s failed: %s", filename, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "status": "imported",
            "source": profile.source,
            "sample_count": len(profile.samples),
            "event_count": len(profile.events),
            "session": controller.snapshot(include_logs=False),
        }

    return router
