"""
Report query endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from fastapi.encoders import jsonable_encoder
from typing import Optional
import structlog

from partmon.api.dependencies import get_report_store, get_settings
from partmon.core.config import Settings
from partmon.database.report_store import ReportStore
from partmon.models.alert import AlertRecord
from partmon.models.interval import IntervalRecord
from partmon.schemas.report import (
    ALERT_CSV_HEADER,
    INTERVAL_CSV_HEADER,
    AlertRecordResponse,
    IntervalRecordResponse,
    alert_csv_row,
    interval_csv_row,
    render_csv,
)

logger = structlog.get_logger(__name__)
router = APIRouter()

UINT16_MAX = 65535

REPORT_KINDS = {
    "alert": (AlertRecord, AlertRecordResponse, ALERT_CSV_HEADER, alert_csv_row),
    "interval": (IntervalRecord, IntervalRecordResponse, INTERVAL_CSV_HEADER, interval_csv_row),
}

def parse_uint16(value: str) -> Optional[int]:
    """Parse a non-negative 16-bit integer, None if invalid"""
    # ASCII only: str.isdigit also accepts superscripts and other scripts' digits
    if not (value.isascii() and value.isdigit()):
        return None
    number = int(value)
    return number if number <= UINT16_MAX else None

def empty_payload(settings: Settings) -> JSONResponse:
    return JSONResponse(status_code=200, content={} if settings.legacy_empty_payload else [])

@router.get("/getreport")
async def get_report(
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    store: ReportStore = Depends(get_report_store),
    settings: Settings = Depends(get_settings)
):
    """Most recent records, newest first"""
    logger.info("Report requested", limit=limit, offset=offset)

    if not limit or not offset:
        raise HTTPException(status_code=422, detail="Query parameters not supplied")

    limit_value = parse_uint16(limit)
    offset_value = parse_uint16(offset)
    if limit_value is None or offset_value is None:
        raise HTTPException(status_code=422, detail="Query parameters not valid")

    if limit_value > settings.max_report_limit:
        raise HTTPException(status_code=413, detail="Given length is too high")

    model, schema, _, _ = REPORT_KINDS[settings.report_kind]
    records = await run_in_threadpool(store.read_recent, model, limit_value, offset_value)
    if not records:
        return empty_payload(settings)

    payload = [schema.model_validate(r) for r in records]
    return JSONResponse(content=jsonable_encoder(payload, by_alias=True))

@router.get("/getTimereport")
async def get_time_report(
    start: Optional[str] = Query(None, alias="from"),
    end: Optional[str] = Query(None, alias="to"),
    store: ReportStore = Depends(get_report_store),
    settings: Settings = Depends(get_settings)
):
    """Records within an inclusive time window, as CSV"""
    logger.info("Time report requested", start=start, end=end)

    if not start or not end:
        raise HTTPException(status_code=422, detail="Query parameters not supplied")

    model, _, header, to_row = REPORT_KINDS[settings.report_kind]
    records = await run_in_threadpool(store.read_range, model, start, end)
    if not records:
        return empty_payload(settings)

    body = render_csv(header, (to_row(r) for r in records))
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="partmon_report.csv"'}
    )
