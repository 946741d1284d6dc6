"""
Event correlator: turns topic-addressed telemetry into persisted records
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional

import structlog

from partmon.core.exceptions import DecodeError, StorageError
from partmon.correlator.state import DeviceIntervalState, DeviceStateStore, Transition
from partmon.database.report_store import ReportStore
from partmon.models.interval import IntervalRecord
from partmon.schemas.signal import SignalReading, decode_alert, decode_signal

logger = structlog.get_logger(__name__)

Publisher = Callable[[str, str], None]


@dataclass(frozen=True)
class TopicAddress:
    """``{namespace}/{device}/{channel}/{signal}``"""

    namespace: str
    device_id: str
    channel: str
    signal: str

    @classmethod
    def parse(cls, topic: str) -> "TopicAddress":
        parts = topic.split("/")
        if len(parts) != 4:
            raise DecodeError(f"unknown topic format: {topic}")
        return cls(*parts)

    def sibling(self, signal: str) -> str:
        return "/".join((self.namespace, self.device_id, self.channel, signal))


@dataclass(frozen=True)
class ClosedInterval:
    device_id: str
    category: str
    opened_at: datetime
    duration: float


class EventCorrelator:
    """Correlates on/off signals per device and stores completed intervals.

    ``handle`` never raises: every failure degrades to a logged, dropped
    message so one bad reading cannot stop the ingestion session.
    """

    def __init__(
        self,
        report_store: ReportStore,
        state_store: DeviceStateStore,
        *,
        tz: tzinfo,
        relevant_signals: Iterable[str],
        alert_signals: Iterable[str] = ("alert",),
        heartbeat_signals: Iterable[str] = ("rssi",),
        last_seen_signal: str = "lastseen",
        installation_epoch: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
        publisher: Optional[Publisher] = None,
    ):
        self.report_store = report_store
        self.state_store = state_store
        self.timezone = tz
        self.relevant_signals = frozenset(relevant_signals)
        self.alert_signals = frozenset(alert_signals)
        self.heartbeat_signals = frozenset(heartbeat_signals)
        self.last_seen_signal = last_seen_signal
        self.installation_epoch = datetime.fromtimestamp(installation_epoch, tz=tz)
        self._clock = clock or (lambda: datetime.now(self.timezone))
        self._publisher = publisher

    def attach_publisher(self, publisher: Optional[Publisher]) -> None:
        self._publisher = publisher

    def handle(self, topic: str, payload: bytes) -> Optional[object]:
        """Process one inbound message; returns the stored record, if any."""
        try:
            address = TopicAddress.parse(topic)
        except DecodeError as e:
            logger.info("Ignoring message", topic=topic, reason=str(e))
            return None

        if address.signal == self.last_seen_signal:
            # Our own heartbeat echo, we subscribe to the whole namespace
            return None

        try:
            if address.signal in self.alert_signals:
                return self._handle_alert(address, payload)
            if address.signal in self.heartbeat_signals:
                self._publish_last_seen(address)
                return None
            if address.signal in self.relevant_signals or address.channel in self.relevant_signals:
                return self._handle_signal(address, payload)
        except DecodeError as e:
            logger.warning("Dropping undecodable message", topic=topic, error=str(e))
            return None
        except Exception:
            logger.exception("Unexpected error handling message", topic=topic)
            return None

        logger.debug("Topic not required", topic=topic)
        return None

    def _handle_alert(self, address: TopicAddress, payload: bytes):
        message = decode_alert(payload)
        record = message.to_record()
        stored = self._store(record, topic_device=address.device_id)
        if stored is not None:
            logger.info("Alert upserted", alert_id=message.alert_id, active=message.is_active)
        return stored

    def _handle_signal(self, address: TopicAddress, payload: bytes):
        reading = decode_signal(payload, self.timezone)
        now = self._clock()
        closed = self.state_store.update(
            address.device_id,
            lambda previous: self._advance(address, previous, reading, now),
        )
        if closed is None:
            return None

        record = IntervalRecord(
            name=closed.device_id,
            category=closed.category,
            start_time=self.report_store.to_local(closed.opened_at),
            duration=closed.duration,
        )
        stored = self._store(record, topic_device=address.device_id)
        if stored is not None:
            logger.info("Interval recorded", device_id=closed.device_id, duration=closed.duration)
        return stored

    def _advance(
        self,
        address: TopicAddress,
        previous: Optional[DeviceIntervalState],
        reading: SignalReading,
        now: datetime,
    ) -> Transition[Optional[ClosedInterval]]:
        device_id = address.device_id
        is_open = previous is not None and previous.last_value

        if reading.level:
            if is_open:
                # Still on: keep the opening time, track the latest reported duration
                duration = reading.duration if reading.duration is not None else previous.reported_duration
                state = DeviceIntervalState(device_id, previous.opened_at, True, duration)
            else:
                state = DeviceIntervalState(device_id, reading.timestamp or now, True, reading.duration)
            return Transition(state, None)

        if not is_open:
            return Transition(None, None)

        opened_at = previous.opened_at
        closed_at = reading.timestamp or now
        if opened_at is None or opened_at < self.installation_epoch:
            logger.warning("Discarding stale interval", device_id=device_id, opened_at=str(opened_at))
            return Transition(None, None)

        if reading.duration is not None:
            duration = reading.duration
        elif previous.reported_duration is not None:
            duration = previous.reported_duration
        else:
            duration = (closed_at - opened_at).total_seconds()

        if duration < 0:
            logger.warning("Discarding negative interval", device_id=device_id, duration=duration)
            return Transition(None, None)

        return Transition(None, ClosedInterval(device_id, address.signal, opened_at, duration))

    def _store(self, record, topic_device: str):
        try:
            return self.report_store.write(record)
        except StorageError as e:
            logger.error("Failed to store record", device_id=topic_device, error=str(e))
            return None

    def _publish_last_seen(self, address: TopicAddress) -> None:
        if self._publisher is None:
            return
        topic = address.sibling(self.last_seen_signal)
        seen_at = self._clock().astimezone(timezone.utc).isoformat()
        try:
            self._publisher(topic, seen_at)
        except Exception as e:
            logger.warning("Failed to publish last seen", topic=topic, error=str(e))
