"""Internal MQTT runtime for the bus record stream."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pybustrack.exceptions import SnapshotParseError


@dataclass(frozen=True)
class MqttBusMessage:
    """Decoded MQTT message carrying one bus node."""

    bus_id: str
    topic: str
    payload: dict[str, Any] | None
    error: Exception | None = None


def bus_id_from_topic(topic: str, prefix: str) -> str | None:
    """Return the bus id for ``{prefix}/{bus_id}``, or ``None`` for foreign topics."""
    head = f"{prefix.strip('/')}/"
    if not topic.startswith(head):
        return None
    bus_id = topic[len(head) :]
    if not bus_id or "/" in bus_id:
        return None
    return bus_id


def decode_bus_payload(payload: bytes, *, bus_id: str = "") -> dict[str, Any] | None:
    """Decode a retained bus node; an empty payload means the node was deleted."""
    if not payload:
        return None
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SnapshotParseError(f"MQTT payload for {bus_id} is not JSON", bus_id=bus_id) from exc
    if parsed is None:
        return None
    if not isinstance(parsed, dict):
        raise SnapshotParseError(f"MQTT payload for {bus_id} decoded to non-object JSON", bus_id=bus_id)
    return parsed


class BusMqttRuntime:
    """Threaded paho-mqtt runtime that emits decoded bus messages onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        topic_prefix: str,
        on_message: Callable[[MqttBusMessage], None],
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._prefix = topic_prefix.strip("/")
        self._on_message = on_message
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False
        self._topics: set[str] = set()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def topic_for(self, bus_id: str) -> str:
        return f"{self._prefix}/{bus_id}"

    def start(
        self,
        host: str,
        port: int,
        *,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
    ) -> None:
        """Connect and resubscribe to every tracked bus topic."""
        self.stop()
        self._logger.debug("MQTT runtime start requested host=%s port=%s prefix=%s", host, port, self._prefix)

        client = mqtt.Client(callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2)
        client.enable_logger(self._logger)
        if username:
            client.username_pw_set(username, password)
        if tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            with self._lock:
                self._connected = True
                topics = sorted(self._topics)
            for topic in topics:
                c.subscribe(topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            bus_id = bus_id_from_topic(msg.topic, self._prefix)
            if bus_id is None:
                return
            try:
                payload = decode_bus_payload(msg.payload, bus_id=bus_id)
                event = MqttBusMessage(bus_id=bus_id, topic=msg.topic, payload=payload)
            except SnapshotParseError as exc:
                event = MqttBusMessage(bus_id=bus_id, topic=msg.topic, payload=None, error=exc)
            self._loop.call_soon_threadsafe(self._on_message, event)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            with self._lock:
                self._connected = False
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(host, port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def subscribe(self, bus_id: str) -> None:
        topic = self.topic_for(bus_id)
        with self._lock:
            self._topics.add(topic)
            client = self._client if self._connected else None
        if client is not None:
            client.subscribe(topic, qos=1)

    def unsubscribe(self, bus_id: str) -> None:
        topic = self.topic_for(bus_id)
        with self._lock:
            self._topics.discard(topic)
            client = self._client if self._connected else None
        if client is not None:
            client.unsubscribe(topic)

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
