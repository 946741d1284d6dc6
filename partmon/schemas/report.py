"""
Report response schemas and CSV rendering
"""

import csv
import io
from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import AliasGenerator, BaseModel, Field
from pydantic.alias_generators import to_pascal

from partmon.models.alert import AlertRecord
from partmon.models.interval import IntervalRecord

CSV_TIME_FORMAT = "%Y-%m-%d %I:%M:%S %p"

INTERVAL_CSV_HEADER = ["Id", "Name", "Category", "StartTime", "Duration", "Comments"]
ALERT_CSV_HEADER = [
    "AlertId", "Alert", "AlertType", "Location", "InitiatedBy", "AcknowledgeBy",
    "ResolvedBy", "InitiateTime", "AcknowledgeTime", "ResolvedTime", "SlaLevel", "Duration",
]

class IntervalRecordResponse(BaseModel):
    """Schema for interval record response"""
    id: int
    name: str = Field(..., description="Device identifier")
    category: Optional[str] = Field(None, description="Signal that produced the interval")
    start_time: datetime
    duration: float = Field(..., ge=0, description="Elapsed seconds")
    comments: Optional[str] = None

    class Config:
        from_attributes = True
        alias_generator = AliasGenerator(serialization_alias=to_pascal)

class AlertRecordResponse(BaseModel):
    """Schema for alert record response"""
    alert_id: str
    alert: str
    alert_type: str
    location: str
    initiated_by: str
    acknowledge_by: Optional[str] = None
    resolved_by: Optional[str] = None
    initiate_time: datetime
    acknowledge_time: Optional[datetime] = None
    resolved_time: Optional[datetime] = None
    sla_level: Optional[int] = None
    is_active: bool = False

    class Config:
        from_attributes = True
        alias_generator = AliasGenerator(serialization_alias=to_pascal)

def format_elapsed(start: datetime, end: datetime) -> str:
    """Elapsed time as HH:MM, rounded to the nearest minute"""
    seconds = (end - start).total_seconds()
    sign = "-" if seconds < 0 else ""
    minutes = int(abs(seconds) / 60 + 0.5)
    hours, minutes = divmod(minutes, 60)
    return f"{sign}{hours:02d}:{minutes:02d}"

def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime(CSV_TIME_FORMAT) if value else ""

def interval_csv_row(record: IntervalRecord) -> List:
    return [
        record.id,
        record.name,
        record.category or "",
        _fmt_time(record.start_time),
        round(record.duration, 1),
        record.comments or "",
    ]

def alert_csv_row(record: AlertRecord) -> List:
    duration = ""
    if record.resolved_time:
        duration = format_elapsed(record.initiate_time, record.resolved_time)
    return [
        record.alert_id,
        record.alert,
        record.alert_type,
        record.location,
        record.initiated_by,
        record.acknowledge_by or "",
        record.resolved_by or "",
        _fmt_time(record.initiate_time),
        _fmt_time(record.acknowledge_time),
        _fmt_time(record.resolved_time),
        record.sla_level if record.sla_level is not None else "",
        duration,
    ]

def render_csv(header: List[str], rows: Iterable[List]) -> str:
    """Render rows as CSV text"""
    si = io.StringIO()
    cw = csv.writer(si)
    cw.writerow(header)
    for row in rows:
        cw.writerow(row)
    return si.getvalue()
