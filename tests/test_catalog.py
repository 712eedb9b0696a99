from __future__ import annotations

from pybustrack.models.directory import Route, Stop
from pybustrack.models.snapshot import BusSnapshot, RouteState
from pybustrack.models.trip import TripEvent, TripEventKind
from pybustrack.notify.catalog import CATALOG, WELCOME, render
from pybustrack.state.machine import TripStateMachine

NOW_MS = 1_770_000_000_000


def test_every_event_kind_has_a_template() -> None:
    assert set(CATALOG) == set(TripEventKind)
    assert WELCOME.data == {"type": "welcome"}


def test_bus_started_names_the_driver_route() -> None:
    route = Route(id="route-7", stops=[Stop(id="s-1", name="Main Gate", ordinal=1)])
    machine = TripStateMachine("BUS-007", clock=lambda: NOW_MS)
    machine.ingest(BusSnapshot(bus_id="BUS-007", route_id="route-7", observed_at_millis=NOW_MS), route)
    events = machine.ingest(
        BusSnapshot(
            bus_id="BUS-007",
            route_id="route-7",
            route_name="Kagal Express",
            route_state=RouteState.IN_PROGRESS,
            observed_at_millis=NOW_MS + 1,
        ),
        route,
    )

    message = render(events[0])

    assert message.title == "🚌 Bus Started!"
    assert message.body == "Your bus (BUS-007) has started on Kagal Express! Track it in real-time."
    assert message.data == {"type": "bus-started", "busNumber": "BUS-007", "routeId": "route-7"}


def test_route_without_any_name_falls_back() -> None:
    event = TripEvent(bus_id="BUS-007", route_id=None, kind=TripEventKind.BUS_STARTED, emitted_at_millis=NOW_MS)
    assert render(event).body == "Your bus (BUS-007) has started on your route! Track it in real-time."
    assert render(event).data["routeId"] == ""


def test_stop_event_carries_stop_fields() -> None:
    event = TripEvent(
        bus_id="BUS-007",
        route_id="route-7",
        kind=TripEventKind.STOP_PASSED,
        stop_index=0,
        stop_id="s-1",
        emitted_at_millis=NOW_MS,
    )
    message = render(event)
    assert message.body == 'The bus has passed "Unknown Stop". Please contact the driver if needed.'
    assert message.data["stopName"] == "Unknown Stop"
    assert message.data["stopId"] == "s-1"
