"""
Health check endpoints
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
import structlog

from partmon import __version__
from partmon.api.dependencies import get_report_store
from partmon.core.exceptions import StorageError
from partmon.database.report_store import ReportStore

logger = structlog.get_logger(__name__)
router = APIRouter()

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "partmon report service",
        "version": __version__
    }

@router.get("/health/detailed")
async def detailed_health_check(store: ReportStore = Depends(get_report_store)):
    """Detailed health check with database connectivity"""
    try:
        await run_in_threadpool(store.ping)
        db_status = "connected"
    except StorageError as e:
        logger.error("Database health check failed", error=str(e))
        db_status = "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "unhealthy",
        "database": db_status,
        "service": "partmon report service",
        "version": __version__
    }
