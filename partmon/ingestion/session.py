"""
MQTT ingestion session
Subscribes to the application namespace and feeds every message to the correlator
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Dict, Optional, Set, Tuple

import paho.mqtt.client as mqtt
import structlog

from partmon.core.config import Settings
from partmon.core.exceptions import ConnectivityError
from partmon.correlator.engine import EventCorrelator

logger = structlog.get_logger(__name__)

TLS_SCHEMES = {"ssl", "tls", "mqtts"}


def parse_broker_address(address: str) -> Tuple[str, int, bool]:
    """Split ``tcp://host:port`` into host, port and whether TLS is wanted."""
    value = address.strip()
    if not value:
        raise ValueError("Broker address is empty")

    scheme = "tcp"
    if "://" in value:
        scheme, value = value.split("://", 1)
    if "/" in value:
        value = value.split("/", 1)[0]

    use_tls = scheme.lower() in TLS_SCHEMES
    host, _, maybe_port = value.rpartition(":")
    if host and maybe_port.isdigit():
        return host, int(maybe_port), use_tls
    return value, 8883 if use_tls else 1883, use_tls


def _device_key(topic: str) -> str:
    parts = topic.split("/")
    return parts[1] if len(parts) > 1 else topic


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
    )


class IngestionSession:
    """Threaded paho-mqtt client that dispatches messages onto the asyncio loop.

    Each message becomes its own task running the correlator in a worker
    thread, so blocking database writes never stall the network loop or the
    HTTP handlers. Tasks for the same device are chained so its readings are
    correlated in the order the broker delivered them.
    """

    def __init__(
        self,
        correlator: EventCorrelator,
        settings: Settings,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.correlator = correlator
        self.settings = settings
        self._client_factory = client_factory or _default_client_factory
        self._client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._tails: Dict[str, asyncio.Task] = {}
        self.running = False

    @property
    def topic(self) -> str:
        return self.settings.subscription_topic

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def start(self):
        """Connect with bounded backoff, subscribe and start the network loop"""
        host, port, use_tls = parse_broker_address(self.settings.mqtt_server_address)
        self._loop = asyncio.get_running_loop()

        client = self._client_factory(self.settings.mqtt_client_id)
        client.enable_logger(logging.getLogger(__name__))
        if use_tls:
            client.tls_set()
        client.reconnect_delay_set(
            min_delay=self.settings.mqtt_reconnect_min_delay,
            max_delay=self.settings.mqtt_reconnect_max_delay,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        delay = self.settings.connect_backoff_seconds
        attempts = max(1, self.settings.connect_attempts)
        for attempt in range(1, attempts + 1):
            try:
                logger.info("Connecting to MQTT broker", host=host, port=port, attempt=attempt)
                await asyncio.to_thread(client.connect, host, port, self.settings.mqtt_keepalive)
                break
            except (OSError, ValueError) as e:
                logger.warning("MQTT connect failed", host=host, port=port, attempt=attempt, error=str(e))
                if attempt == attempts:
                    raise ConnectivityError(
                        f"could not reach broker {host}:{port}: {e}",
                        broker=self.settings.mqtt_server_address,
                        attempts=attempts,
                    ) from e
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.settings.connect_backoff_max_seconds)

        client.loop_start()
        self._client = client
        self.running = True
        self.correlator.attach_publisher(self.publish)
        logger.info("MQTT network loop started", topic=self.topic)

    async def run(self):
        """Keep starting the session until connected; cancel to give up"""
        while True:
            try:
                await self.start()
                return
            except ConnectivityError as e:
                # Queries are still served from what is already stored
                logger.error(
                    "MQTT ingestion unavailable, retrying",
                    broker=e.broker,
                    attempts=e.attempts,
                    retry_in=self.settings.connect_retry_seconds,
                )
                await asyncio.sleep(self.settings.connect_retry_seconds)

    async def stop(self):
        """Disconnect and wait for in-flight messages to finish"""
        client = self._client
        self._client = None
        self.running = False
        self.correlator.attach_publisher(None)

        if client is not None:
            try:
                client.disconnect()
            finally:
                await asyncio.to_thread(client.loop_stop)
            logger.info("Disconnected from MQTT broker")

        if self._tasks:
            logger.info("Draining in-flight messages", pending=len(self._tasks))
            _, not_done = await asyncio.wait(
                set(self._tasks), timeout=self.settings.shutdown_grace_seconds
            )
            if not_done:
                logger.warning("Messages still in flight at shutdown", pending=len(not_done))

    def publish(self, topic: str, payload: str) -> None:
        client = self._client
        if client is None:
            raise ConnectivityError("session is not connected", broker=self.settings.mqtt_server_address)
        info = client.publish(topic, payload, qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectivityError(f"publish to {topic} failed with rc={info.rc}")

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties) -> None:
        if reason_code.is_failure:
            logger.warning("MQTT connect refused", reason=str(reason_code))
            return
        # Runs again after every automatic reconnect
        client.subscribe(self.topic, qos=0)
        logger.info("Subscribed", topic=self.topic)

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties) -> None:
        if self.running:
            logger.warning("MQTT disconnected, reconnecting", reason=str(reason_code))

    def _on_message(self, _client, _userdata, msg) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dispatch, msg.topic, bytes(msg.payload))

    def _dispatch(self, topic: str, payload: bytes) -> None:
        # Messages for one device run in arrival order, other devices proceed in parallel
        key = _device_key(topic)
        task = asyncio.create_task(self._process(self._tails.get(key), topic, payload))
        self._tails[key] = task
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finish(key, done))

    async def _process(self, previous: Optional[asyncio.Task], topic: str, payload: bytes) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        await asyncio.to_thread(self.correlator.handle, topic, payload)

    def _finish(self, key: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._tails.get(key) is task:
            del self._tails[key]
