"""
Inbound MQTT payload schemas and decoding
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from partmon.core.exceptions import DecodeError
from partmon.models.alert import AlertRecord

# Layout used by the andon panels, e.g. "19/Oct/2026 02:15:00 PM"
PANEL_TIME_FORMAT = "%d/%b/%Y %I:%M:%S %p"


@dataclass(frozen=True)
class SignalReading:
    """One decoded on/off reading."""

    level: bool
    timestamp: Optional[datetime] = None
    duration: Optional[float] = None


class SignalPayload(BaseModel):
    """Structured signal payload"""
    value: bool = Field(..., description="Signal level")
    duration: Optional[float] = Field(None, ge=0, description="Reported duration in seconds")
    timestamp: Optional[datetime] = Field(None, description="Time of the reading")


class AlertMessage(BaseModel):
    """Complete alert record published by an andon panel"""

    model_config = ConfigDict(populate_by_name=True)

    alert_id: str = Field(..., alias="AlertId", min_length=1)
    alert: str = Field("", alias="Alert")
    alert_type: str = Field("", alias="AlertType")
    location: str = Field("", alias="Location")
    initiated_by: str = Field("", alias="InitiatedBy")
    acknowledge_by: Optional[str] = Field(None, alias="AcknowledgeBy")
    resolved_by: Optional[str] = Field(None, alias="ResolvedBy")
    initiate_time: datetime = Field(..., alias="InitiateTime")
    is_active: bool = Field(False, alias="IsActive")
    acknowledge_time: Optional[datetime] = Field(None, alias="AcknowledgeTime")
    resolved_time: Optional[datetime] = Field(None, alias="ResolvedTime")
    sla_level: int = Field(0, alias="SlaLevel")

    @field_validator("initiate_time", "acknowledge_time", "resolved_time", mode="before")
    @classmethod
    def parse_panel_time(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, str):
            return datetime.strptime(value.strip(), PANEL_TIME_FORMAT)
        return value

    def to_record(self) -> AlertRecord:
        return AlertRecord(**self.model_dump())


def _payload_text(payload: bytes) -> str:
    # Panels send C strings; everything after the first NUL is padding.
    raw = payload.split(b"\x00", 1)[0]
    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise DecodeError("payload is not valid UTF-8") from exc
    if not text:
        raise DecodeError("empty payload")
    return text


def decode_signal(payload: bytes, tz: tzinfo) -> SignalReading:
    """Decode a bare integer or a structured signal payload.

    ``0`` is low and ``1`` is high. Larger integers are high and carry the
    unix time of the rising edge. Naive timestamps are taken to be in ``tz``.
    """
    text = _payload_text(payload)

    try:
        value = int(text)
    except ValueError:
        value = None

    if value is not None:
        if value < 0:
            raise DecodeError(f"negative signal value {value}")
        if value <= 1:
            return SignalReading(level=bool(value))
        try:
            return SignalReading(level=True, timestamp=datetime.fromtimestamp(value, tz))
        except (OverflowError, OSError, ValueError) as exc:
            raise DecodeError(f"signal timestamp out of range: {value}") from exc

    try:
        parsed = SignalPayload.model_validate_json(text)
    except ValidationError as exc:
        raise DecodeError(f"unknown value format: {text!r}") from exc

    timestamp = parsed.timestamp
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=tz)
    return SignalReading(level=parsed.value, timestamp=timestamp, duration=parsed.duration)


def decode_alert(payload: bytes) -> AlertMessage:
    """Decode an andon alert message."""
    text = _payload_text(payload)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError("alert payload is not JSON") from exc
    if not isinstance(data, dict):
        raise DecodeError("alert payload must be a JSON object")
    try:
        return AlertMessage.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(f"invalid alert message: {exc.error_count()} error(s)") from exc
