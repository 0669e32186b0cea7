"""
CrowdCountFusion Main Application
=================================

FastAPI entry point for the people-count fusion service.

Startup loads every estimator kind in the background. The service
accepts uploads immediately; kinds that are not ready yet simply do not
qualify, and kinds that never become ready are given up on after
`estimators.load_timeout_seconds`.

Endpoints:
    GET  /            - Service information
    GET  /health      - Liveness probe (is process alive?)
    GET  /ready       - Readiness probe (have all estimators settled?)
    GET  /estimators  - Per-kind availability
    GET  /metrics     - Registry metrics
    POST /analyze     - Analyze one uploaded image
    WS   /ws/analyze  - Analysis channel; newer images supersede older ones
"""

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Mapping, Optional

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile, WebSocket
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from crowd_fusion.config import Settings, settings
from crowd_fusion.estimators import EstimatorRegistry, create_loaders
from crowd_fusion.estimators.registry import Loader
from crowd_fusion.fusion import FusionEngine, FusionPolicy
from crowd_fusion.imaging import ImageDecodeError, decode_image_b64, decode_image_bytes
from crowd_fusion.models.estimate import KIND_ORDER, EstimatorKind
from crowd_fusion.models.output import AnalysisResponse, EstimatorStatus
from crowd_fusion.observability import DisplayOptions
from crowd_fusion.pipeline import (
    AnalysisContext,
    AnalysisSession,
    AnalysisSuperseded,
    run_analysis,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def build_display(
    app_settings: Settings,
    show_people: Optional[bool] = None,
    show_animals: Optional[bool] = None,
) -> DisplayOptions:
    """Display toggles from config, optionally overridden per request."""
    display = app_settings.display
    return DisplayOptions(
        show_people=display.show_people if show_people is None else show_people,
        show_animals=display.show_animals if show_animals is None else show_animals,
        animal_labels=frozenset(display.animal_labels),
    )


def parse_kinds(values: Optional[List[str]], default: List[EstimatorKind]) -> List[EstimatorKind]:
    """
    Parse enabled kinds from request values.

    Raises:
        ValueError: On an unknown kind name
    """
    if values is None:
        return list(default)
    kinds = []
    for value in values:
        for name in str(value).split(","):
            name = name.strip()
            if name:
                kinds.append(EstimatorKind(name))
    return kinds


def _context(request_app: FastAPI) -> AnalysisContext:
    context: Optional[AnalysisContext] = getattr(request_app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return context


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    app_settings: Settings = settings,
    loaders: Optional[Mapping[EstimatorKind, Loader]] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        app_settings: Settings to run with
        loaders: Per-kind loaders; built from the configured backend if None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager."""
        app.state.startup_time = time.time()
        logger.info(f"Starting {app_settings.app.name} {app_settings.app.version}")

        # Estimators: one-shot background loads with bounded readiness
        registry = EstimatorRegistry()
        registry.start_loading(
            loaders if loaders is not None else create_loaders(app_settings.estimators)
        )
        readiness_task = asyncio.create_task(
            registry.wait_all_ready(app_settings.estimators.load_timeout_seconds),
            name="estimator_readiness",
        )

        app.state.context = AnalysisContext(
            registry=registry,
            engine=FusionEngine(
                FusionPolicy(dense_crowd_ratio=app_settings.fusion.dense_crowd_ratio)
            ),
            display=build_display(app_settings),
        )
        logger.info("All components started")

        yield

        # Shutdown
        logger.info("Shutting down gracefully...")
        readiness_task.cancel()
        try:
            await readiness_task
        except asyncio.CancelledError:
            pass
        logger.info("Shutdown complete")

    app = FastAPI(
        title="CrowdCountFusion",
        description="Multi-estimator people counting with fusion and provenance",
        version=app_settings.app.version,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.startup_time = time.time()

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "CrowdCountFusion",
            "version": app_settings.app.version,
            "name": app_settings.app.name,
            "status": "running",
            "estimator_backend": app_settings.estimators.backend,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """
        Readiness probe - have all estimator kinds settled?

        Returns 200 once every kind is LOADED, LOAD_FAILED or GAVE_UP.
        Returns 503 while any kind is still loading.
        """
        registry = _context(app).registry
        available = sorted(k.value for k in registry.available_kinds())

        if registry.all_settled:
            return JSONResponse({"status": "ready", "available": available})
        return JSONResponse(
            {"status": "not_ready", "available": available},
            status_code=503,
        )

    @app.get("/estimators", response_model=List[EstimatorStatus])
    async def estimators() -> List[EstimatorStatus]:
        """Per-kind availability."""
        registry = _context(app).registry
        return [
            EstimatorStatus(
                kind=kind.value,
                availability=registry.slot(kind).availability.value,
                detail=registry.slot(kind).detail,
            )
            for kind in KIND_ORDER
        ]

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Detailed metrics for observability."""
        registry = _context(app).registry
        return JSONResponse({
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
            "estimator_backend": app_settings.estimators.backend,
            **registry.get_metrics(),
        })

    @app.post("/analyze", response_model=AnalysisResponse)
    async def analyze(
        request: Request,
        file: UploadFile = File(...),
        enabled: Optional[List[str]] = Query(default=None),
        show_people: Optional[bool] = Query(default=None),
        show_animals: Optional[bool] = Query(default=None),
    ) -> AnalysisResponse:
        """
        Analyze one uploaded image.

        Estimator failures never fail the request; they are reported in
        the response `failures` list.
        """
        context = _context(request.app)

        try:
            kinds = parse_kinds(enabled, app_settings.estimators.enabled)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        limit = app_settings.server.max_upload_bytes
        data = await file.read(limit + 1)
        if len(data) > limit:
            raise HTTPException(status_code=413, detail="Image too large")

        try:
            image = await asyncio.to_thread(decode_image_bytes, data)
        except ImageDecodeError as e:
            logger.warning(f"Rejected upload {file.filename!r}: {e}")
            raise HTTPException(status_code=400, detail=str(e))

        return await run_analysis(
            context,
            image,
            kinds,
            build_display(app_settings, show_people, show_animals),
        )

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/ws/analyze")
    async def analyze_stream(websocket: WebSocket) -> None:
        """
        Analysis channel.

        Each message is {"image": <base64>, "enabled": [...]}. A newer
        message supersedes an analysis still in flight; only the latest
        result is sent back. Messages are numbered on receipt, so an older
        message that is still decoding never overtakes a newer one.
        """
        await websocket.accept()
        context = _context(app)
        session = AnalysisSession(context)
        pending = set()
        received = 0
        logger.info("Client connected to /ws/analyze")

        def is_stale(seq: int) -> bool:
            return seq != received

        async def handle(message: dict, seq: int) -> None:
            try:
                kinds = parse_kinds(message.get("enabled"), app_settings.estimators.enabled)
                image = await asyncio.to_thread(decode_image_b64, message.get("image", ""))
            except (ImageDecodeError, ValueError) as e:
                await websocket.send_json({"error": str(e)})
                return
            if is_stale(seq):
                logger.debug(f"Dropped message {seq}: superseded while decoding")
                return
            try:
                response = await session.analyze(image, kinds)
            except AnalysisSuperseded:
                logger.debug("Dropped superseded analysis")
                return
            if is_stale(seq):
                logger.debug(f"Dropped result {seq}: superseded")
                return
            await websocket.send_json(response.model_dump(mode="json"))

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                    if not isinstance(message, dict):
                        raise ValueError("message must be a JSON object")
                except ValueError as e:
                    await websocket.send_json({"error": f"Invalid message: {e}"})
                    continue
                received += 1
                task = asyncio.create_task(handle(message, received))
                pending.add(task)
                task.add_done_callback(pending.discard)

        except WebSocketDisconnect:
            pass
        except (RuntimeError, ValidationError) as e:
            logger.warning(f"WebSocket error: {e}")
        finally:
            for task in list(pending):
                task.cancel()
            await session.close()
            logger.info("Client disconnected from /ws/analyze")

    return app


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "crowd_fusion.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
