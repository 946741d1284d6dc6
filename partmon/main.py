"""
partmon report service - FastAPI application
Main entry point: MQTT ingestion plus the report query API
"""

import asyncio
import sys
from contextlib import asynccontextmanager, suppress
from typing import Optional

from dateutil import tz as dateutil_tz
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
import uvicorn

from partmon import __version__
from partmon.api.routes import health, reports
from partmon.core.config import Settings, settings as default_settings
from partmon.core.exceptions import ConfigurationError, StorageError
from partmon.core.log import configure_logging
from partmon.correlator.engine import EventCorrelator
from partmon.correlator.state import DeviceStateStore
from partmon.database.connection import create_sqlite_engine
from partmon.database.report_store import ReportStore
from partmon.ingestion.session import IngestionSession

# Configure structured logging
configure_logging(default_settings.log_level)

logger = structlog.get_logger(__name__)

def resolve_timezone(name: str):
    zone = dateutil_tz.gettz(name)
    if zone is None:
        raise ConfigurationError(f"unknown timezone {name!r}")
    return zone

def build_report_store(settings: Settings) -> ReportStore:
    """Open the SQLite file and make sure the schema exists"""
    engine = create_sqlite_engine(settings.database_path, settings.database_busy_timeout)
    return ReportStore(engine, resolve_timezone(settings.timezone))

def build_correlator(settings: Settings, store: ReportStore) -> EventCorrelator:
    return EventCorrelator(
        store,
        DeviceStateStore(),
        tz=resolve_timezone(settings.timezone),
        relevant_signals=settings.relevant_signals,
        alert_signals=settings.alert_signals,
        heartbeat_signals=settings.heartbeat_signals,
        last_seen_signal=settings.last_seen_signal,
        installation_epoch=settings.installation_epoch,
    )

def create_app(settings: Optional[Settings] = None, start_ingestion: bool = True) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting partmon report service")
        store = build_report_store(settings)
        app.state.report_store = store
        session = IngestionSession(build_correlator(settings, store), settings)
        app.state.ingestion = session

        # Connecting runs in the background so HTTP is served while the broker is down
        ingestion_task = asyncio.create_task(session.run()) if start_ingestion else None

        try:
            yield
        finally:
            logger.info("Shutting down partmon report service")
            if ingestion_task is not None:
                ingestion_task.cancel()
                with suppress(asyncio.CancelledError):
                    await ingestion_task
            await session.stop()
            store.close()

    app = FastAPI(
        title="partmon report service",
        description="Device interval and andon alert reports collected over MQTT",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(reports.router, prefix="/api/v1", tags=["reports"])

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request, exc: StorageError):
        logger.error("Storage failure", operation=exc.operation, error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "something happened while getting the data you have requested"}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler"""
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app

app = create_app()

def run():
    """Console entry point"""
    if not default_settings.database_path.strip():
        logger.critical("DATABASE_PATH cannot be empty")
        sys.exit(1)
    try:
        resolve_timezone(default_settings.timezone)
    except ConfigurationError as e:
        logger.critical("Invalid configuration", error=str(e))
        sys.exit(1)

    uvicorn.run(
        app,
        host=default_settings.api_host,
        port=default_settings.api_port,
        log_level=default_settings.log_level.lower()
    )

if __name__ == "__main__":
    run()
