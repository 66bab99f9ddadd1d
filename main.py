from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.metrics_routes import router as metrics_router
from app.api.snapshot_routes import router as snapshot_router
from app.core.config import Settings, settings
from app.core.logging_config import get_logger, setup_logging
from app.core.register_map import RegisterMap
from app.services.collector import Collector, build_collector

setup_logging(
    log_level=settings.LOG_LEVEL,
    use_json=settings.LOG_JSON,
    include_caller_info=settings.LOG_INCLUDE_CALLER,
)
logger = get_logger(__name__)


def create_app(
    app_settings: Settings | None = None,
    session=None,
    register_map: RegisterMap | None = None,
) -> FastAPI:
    """Build the exporter application.

    ``session`` and ``register_map`` default to a Modbus TCP session and the
    map selected by the settings.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- STARTUP LOGIC ---
        collector = build_collector(app_settings, session=session, register_map=register_map)
        logger.info(
            "exporter_starting",
            target=collector.target,
            mode=collector.mode.value,
            register_map=f"{collector.register_map.name}@{collector.register_map.version}",
            word_order=collector.word_order.value,
            port=app_settings.EXPORTER_PORT,
        )
        app.state.collector = collector
        await collector.start()

        yield  # Application is running...

        # --- SHUTDOWN LOGIC ---
        logger.info("exporter_stopping", target=collector.target)
        await collector.stop()
        await collector.store.clear()

    app = FastAPI(title=app_settings.APP_NAME, version=app_settings.APP_VERSION, lifespan=lifespan)
    app.include_router(metrics_router)
    app.include_router(snapshot_router, prefix="/api")

    @app.get("/health", tags=["system"])
    async def healthcheck(request: Request) -> JSONResponse:
        """Liveness of the exporter and freshness of its data.

        Returns:
            - 200: collector running; ``snapshot`` is "fresh", "stale" or "none"
            - 503: collector not initialized
        """
        collector: Collector | None = getattr(request.app.state, "collector", None)
        health = {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if collector is None:
            health["status"] = "error"
            health["collector"] = {"initialized": False}
            return JSONResponse(content=health, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        snapshot = await collector.store.get()
        details = {
            "initialized": True,
            "mode": collector.mode.value,
            "target": collector.target,
            "session_state": collector.session.state.value,
            "last_error": collector.metrics.last_error,
        }
        if snapshot is None:
            details["snapshot"] = "none"
        else:
            age = snapshot.age_seconds()
            details["snapshot_age_seconds"] = round(age, 3)
            # Background data is stale once it misses two refreshes.
            max_age = 2 * getattr(collector, "interval_seconds", app_settings.POLL_INTERVAL_SECONDS)
            details["snapshot"] = "fresh" if age <= max_age else "stale"
        health["collector"] = details
        return JSONResponse(content=health, status_code=status.HTTP_200_OK)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.EXPORTER_HOST, port=settings.EXPORTER_PORT)
