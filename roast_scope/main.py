"""roast-scope — live coffee-roast telemetry, RoR and roast logs.

This is the application entry point.  It wires the RoastSession, the
TransportRegistry, the RoastController and the HTTP/WebSocket endpoints
together.

Run with:  uvicorn roast_scope.main:app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from roast_scope.api.device import create_device_router
from roast_scope.api.session import create_session_router
from roast_scope.api.ws_dashboard import DashboardManager, create_dashboard_router
from roast_scope.config import Settings, settings
from roast_scope.core.ror import RoRConfig
from roast_scope.domain.session import RoastSession
from roast_scope.parsing.line_parser import LineParser
from roast_scope.profile.importer import ImportNormalizer
from roast_scope.services.controller import RoastController
from roast_scope.transports.registry import build_default_registry

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)


def create_app(config: Settings = settings) -> FastAPI:
    """Build a fully wired application for *config*."""

    # ── RoR ──────────────────────────────────────────────────────────────
    ror_config = RoRConfig(
        window_seconds=config.ror_window_seconds,
        min_points=config.ror_min_points,
        min_span_seconds=config.ror_min_span_seconds,
        ror_min=config.ror_min,
        ror_max=config.ror_max,
        flat_threshold=config.ror_flat_threshold,
    )

    # ── State ────────────────────────────────────────────────────────────
    session = RoastSession(
        ror_config=ror_config,
        drop_grace_seconds=config.drop_undo_grace_seconds,
    )

    # ── Transports ───────────────────────────────────────────────────────
    registry = build_default_registry(config, LineParser(config.single_channel_et))

    # ── Controller ───────────────────────────────────────────────────────
    controller = RoastController(
        session,
        registry,
        importer=ImportNormalizer(
            ror_config=ror_config,
            sampling_interval=config.import_sampling_interval,
        ),
        sample_interval=config.sample_interval_seconds,
        drop_grace_seconds=config.drop_undo_grace_seconds,
        temp_unit=config.temp_unit,
    )
    dashboard = DashboardManager(controller)
    controller.add_listener(dashboard.on_update)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await controller.shutdown()

    # ── App ──────────────────────────────────────────────────────────────
    app = FastAPI(
        title=config.app_name,
        description="Roast telemetry, rate of rise and roast logs",
        version="0.3.0",
        lifespan=lifespan,
    )
    app.state.controller = controller
    app.state.dashboard = dashboard

    # ── Routes ───────────────────────────────────────────────────────────
    app.include_router(create_session_router(controller))
    app.include_router(create_device_router(controller, registry))
    app.include_router(create_dashboard_router(dashboard))

    # ── Health ───────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "session_status": controller.session.status.value,
            "sample_count": controller.session.sample_count,
            "event_count": len(controller.session.events),
            "device": controller.device_label,
            "dashboard_clients": dashboard.client_count,
            "transports": registry.stats,
        }

    return app


app = create_app()
