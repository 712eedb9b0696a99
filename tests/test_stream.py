from __future__ import annotations

import asyncio

import pytest

from pybustrack._mqtt import MqttBusMessage, bus_id_from_topic, decode_bus_payload
from pybustrack.config import BusTrackConfig
from pybustrack.exceptions import SnapshotParseError, StreamError
from pybustrack.models.snapshot import BusSnapshot, RouteState
from pybustrack.stream import InMemoryBusRecordStream, MqttBusRecordStream, create_stream

RECEIVED_MS = 1_770_000_000_000


class _DummyRuntime:
    def __init__(self, *, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.started_with: tuple[str, int] | None = None
        self.stopped = False

    def start(
        self,
        host: str,
        port: int,
        *,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
    ) -> None:
        if self.fail_start:
            raise ConnectionRefusedError("broker down")
        self.started_with = (host, port)

    def stop(self) -> None:
        self.stopped = True

    def subscribe(self, bus_id: str) -> None:
        self.subscribed.append(bus_id)

    def unsubscribe(self, bus_id: str) -> None:
        self.unsubscribed.append(bus_id)


def _stream(runtime: _DummyRuntime) -> MqttBusRecordStream:
    return MqttBusRecordStream(
        BusTrackConfig(mqtt_host="broker.local", mqtt_port=1884),
        loop=asyncio.get_running_loop(),
        clock=lambda: RECEIVED_MS,
        runtime=runtime,  # type: ignore[arg-type]
    )


def test_bus_id_from_topic() -> None:
    assert bus_id_from_topic("buses/BUS-002", "buses") == "BUS-002"
    assert bus_id_from_topic("buses/BUS-002", "/buses/") == "BUS-002"
    assert bus_id_from_topic("buses/BUS-002/location", "buses") is None
    assert bus_id_from_topic("trams/T-1", "buses") is None
    assert bus_id_from_topic("buses/", "buses") is None


def test_decode_bus_payload() -> None:
    assert decode_bus_payload(b"") is None
    assert decode_bus_payload(b"null") is None
    assert decode_bus_payload(b'{"location": {"latitude": 1}}') == {"location": {"latitude": 1}}
    with pytest.raises(SnapshotParseError):
        decode_bus_payload(b"\xff\xfe", bus_id="BUS-002")
    with pytest.raises(SnapshotParseError):
        decode_bus_payload(b"[1, 2]", bus_id="BUS-002")


@pytest.mark.asyncio
async def test_subscriptions_share_one_topic_per_bus() -> None:
    runtime = _DummyRuntime()
    stream = _stream(runtime)

    first = stream.subscribe("BUS-002", lambda _snap: None)
    second = stream.subscribe("BUS-002", lambda _snap: None)
    assert runtime.subscribed == ["BUS-002"]

    first()
    first()
    assert runtime.unsubscribed == []
    second()
    assert runtime.unsubscribed == ["BUS-002"]


@pytest.mark.asyncio
async def test_messages_become_snapshots_or_errors() -> None:
    runtime = _DummyRuntime()
    stream = _stream(runtime)
    snapshots: list[BusSnapshot] = []
    errors: list[Exception] = []
    stream.subscribe("BUS-002", snapshots.append, errors.append)

    node = {
        "location": {"latitude": 1.0, "longitude": 2.0, "routeId": "R", "routeState": "in_progress"},
    }
    stream._on_message(MqttBusMessage(bus_id="BUS-002", topic="buses/BUS-002", payload=node))
    stream._on_message(MqttBusMessage(bus_id="BUS-002", topic="buses/BUS-002", payload=None))
    stream._on_message(MqttBusMessage(bus_id="BUS-002", topic="buses/BUS-002", payload={"location": "x"}))
    stream._on_message(
        MqttBusMessage(
            bus_id="BUS-002",
            topic="buses/BUS-002",
            payload=None,
            error=SnapshotParseError("bad json", bus_id="BUS-002"),
        )
    )
    stream._on_message(MqttBusMessage(bus_id="BUS-009", topic="buses/BUS-009", payload=node))

    assert len(snapshots) == 1
    assert snapshots[0].route_state == RouteState.IN_PROGRESS
    assert snapshots[0].observed_at_millis == RECEIVED_MS
    assert len(errors) == 2
    assert all(isinstance(err, SnapshotParseError) for err in errors)


@pytest.mark.asyncio
async def test_start_and_stop() -> None:
    runtime = _DummyRuntime()
    stream = _stream(runtime)
    await stream.start()
    assert runtime.started_with == ("broker.local", 1884)
    await stream.stop()
    assert runtime.stopped is True


@pytest.mark.asyncio
async def test_start_failure_raises_stream_error() -> None:
    stream = _stream(_DummyRuntime(fail_start=True))
    with pytest.raises(StreamError):
        await stream.start()


def test_in_memory_stream_redelivers_latest_on_subscribe() -> None:
    stream = InMemoryBusRecordStream()
    snap = BusSnapshot(bus_id="BUS-002", route_state="in_progress", observed_at_millis=RECEIVED_MS)
    stream.publish(snap)

    received: list[BusSnapshot] = []
    unsubscribe = stream.subscribe("BUS-002", received.append)
    assert received == [snap]

    unsubscribe()
    stream.publish(snap.model_copy(update={"observed_at_millis": RECEIVED_MS + 1}))
    assert len(received) == 1
    latest = stream.latest("BUS-002")
    assert latest is not None
    assert latest.observed_at_millis == RECEIVED_MS + 1


def test_in_memory_stream_errors_go_to_subscriber() -> None:
    stream = InMemoryBusRecordStream()
    errors: list[Exception] = []
    stream.subscribe("BUS-002", lambda _snap: None, errors.append)
    stream.subscribe("BUS-002", lambda _snap: None)

    stream.publish_error("BUS-002", StreamError("permission denied", bus_id="BUS-002"))

    assert len(errors) == 1
    assert str(errors[0]) == "permission denied"


@pytest.mark.asyncio
async def test_create_stream_follows_mqtt_enabled() -> None:
    loop = asyncio.get_running_loop()
    assert isinstance(create_stream(BusTrackConfig(), loop=loop), InMemoryBusRecordStream)
    assert isinstance(create_stream(BusTrackConfig(mqtt_enabled=True), loop=loop), MqttBusRecordStream)
