"""Bus record streams.

A stream delivers the latest :class:`BusSnapshot` for a bus whenever the
driver client changes any field, and redelivers the current snapshot
immediately on subscribe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from pybustrack._mqtt import BusMqttRuntime, MqttBusMessage
from pybustrack.config import BusTrackConfig
from pybustrack.exceptions import SnapshotParseError, StreamError
from pybustrack.ingestion.rtdb import parse_bus_node
from pybustrack.models.snapshot import BusSnapshot

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[BusSnapshot], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class BusRecordStream(Protocol):
    """Subscription source keyed by bus id."""

    def subscribe(
        self,
        bus_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...


@dataclass(eq=False)
class _Subscription:
    bus_id: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback | None = None
    active: bool = field(default=True)


class _SubscriberRegistry:
    def __init__(self) -> None:
        self._subs: dict[str, list[_Subscription]] = {}

    def add(self, sub: _Subscription) -> bool:
        """Register *sub*; returns True when it is the first one for its bus."""
        subs = self._subs.setdefault(sub.bus_id, [])
        subs.append(sub)
        return len(subs) == 1

    def remove(self, sub: _Subscription) -> bool:
        """Unregister *sub*; returns True when no subscriber is left for its bus."""
        sub.active = False
        subs = self._subs.get(sub.bus_id)
        if subs is None:
            return False
        self._subs[sub.bus_id] = [cand for cand in subs if cand is not sub]
        if not self._subs[sub.bus_id]:
            self._subs.pop(sub.bus_id, None)
            return True
        return False

    def for_bus(self, bus_id: str) -> list[_Subscription]:
        return list(self._subs.get(bus_id, []))

    def notify_snapshot(self, snapshot: BusSnapshot) -> None:
        for sub in self.for_bus(snapshot.bus_id):
            if sub.active:
                sub.on_snapshot(snapshot)

    def notify_error(self, bus_id: str, error: Exception) -> None:
        for sub in self.for_bus(bus_id):
            if not sub.active:
                continue
            if sub.on_error is not None:
                sub.on_error(error)
            else:
                _logger.warning("Unhandled stream error for bus %s: %s", bus_id, error)


class InMemoryBusRecordStream:
    """Process-local stream that keeps the latest snapshot per bus."""

    def __init__(self) -> None:
        self._latest: dict[str, BusSnapshot] = {}
        self._registry = _SubscriberRegistry()

    def publish(self, snapshot: BusSnapshot) -> None:
        self._latest[snapshot.bus_id] = snapshot
        self._registry.notify_snapshot(snapshot)

    def publish_error(self, bus_id: str, error: Exception) -> None:
        self._registry.notify_error(bus_id, error)

    def latest(self, bus_id: str) -> BusSnapshot | None:
        return self._latest.get(bus_id)

    def subscribe(
        self,
        bus_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        sub = _Subscription(bus_id=bus_id, on_snapshot=on_snapshot, on_error=on_error)
        self._registry.add(sub)
        current = self._latest.get(bus_id)
        if current is not None:
            on_snapshot(current)

        def unsubscribe() -> None:
            if sub.active:
                self._registry.remove(sub)

        return unsubscribe


class MqttBusRecordStream:
    """Bus record stream backed by retained MQTT messages.

    Driver clients publish each bus node as a retained JSON message on
    ``{prefix}/{bus_id}``, so subscribing yields the current snapshot
    straight away.  Callbacks run on the asyncio loop the stream was
    created with.

    Usage::

        stream = MqttBusRecordStream(config, loop=asyncio.get_running_loop())
        await stream.start()
        unsubscribe = stream.subscribe("BUS-002", on_snapshot, on_error)
    """

    def __init__(
        self,
        config: BusTrackConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        clock: Callable[[], int] = _now_ms,
        runtime: BusMqttRuntime | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._clock = clock
        self._registry = _SubscriberRegistry()
        self._runtime = runtime or BusMqttRuntime(
            loop=loop,
            topic_prefix=config.mqtt_topic_prefix,
            on_message=self._on_message,
            keepalive=config.mqtt_keepalive,
            logger=_logger,
        )

    async def start(self) -> None:
        try:
            await self._loop.run_in_executor(
                None,
                lambda: self._runtime.start(
                    self._config.mqtt_host,
                    self._config.mqtt_port,
                    username=self._config.mqtt_username,
                    password=self._config.mqtt_password,
                    tls=self._config.mqtt_tls,
                ),
            )
        except OSError as exc:
            raise StreamError(
                f"Cannot connect to MQTT broker {self._config.mqtt_host}:{self._config.mqtt_port}: {exc}"
            ) from exc

    async def stop(self) -> None:
        try:
            await self._loop.run_in_executor(None, self._runtime.stop)
        except Exception:
            _logger.debug("MQTT runtime stop failed", exc_info=True)

    def subscribe(
        self,
        bus_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        sub = _Subscription(bus_id=bus_id, on_snapshot=on_snapshot, on_error=on_error)
        if self._registry.add(sub):
            self._runtime.subscribe(bus_id)

        def unsubscribe() -> None:
            if sub.active and self._registry.remove(sub):
                self._runtime.unsubscribe(bus_id)

        return unsubscribe

    def _on_message(self, message: MqttBusMessage) -> None:
        if message.error is not None:
            self._registry.notify_error(message.bus_id, message.error)
            return
        try:
            snapshot = parse_bus_node(message.bus_id, message.payload, received_at_ms=self._clock())
        except SnapshotParseError as exc:
            self._registry.notify_error(message.bus_id, exc)
            return
        if snapshot is None:
            _logger.debug("Bus %s has no location yet; nothing to deliver", message.bus_id)
            return
        self._registry.notify_snapshot(snapshot)


def create_stream(config: BusTrackConfig, *, loop: asyncio.AbstractEventLoop) -> BusRecordStream:
    """Return the stream selected by ``config.mqtt_enabled``.

    The MQTT stream still has to be started with :meth:`MqttBusRecordStream.start`.
    """
    if config.mqtt_enabled:
        return MqttBusRecordStream(config, loop=loop)
    return InMemoryBusRecordStream()
