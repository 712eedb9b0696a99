from __future__ import annotations

import pytest
from pydantic import ValidationError

from pybustrack.models.directory import Route, Stop, StudentAssignment
from pybustrack.models.snapshot import BusSnapshot, RouteState, StopProgress, StopStatus


def test_snapshot_accepts_camel_case_payload() -> None:
    snap = BusSnapshot.model_validate(
        {
            "busId": " BUS-002 ",
            "routeId": "R",
            "routeState": "IN_PROGRESS",
            "currentStop": {"stopId": "B", "order": "2"},
            "perStopStatus": {"A": "reached", "B": {"status": "current", "name": "Bravo"}},
            "observedAtMillis": 1_770_000_000_000,
        }
    )
    assert snap.bus_id == "BUS-002"
    assert snap.route_state == RouteState.IN_PROGRESS
    assert snap.current_stop is not None
    assert snap.current_stop.ordinal == 2
    assert snap.per_stop_status == {"A": StopStatus.REACHED, "B": StopStatus.CURRENT}
    assert snap.per_stop["B"].name == "Bravo"


def test_snapshot_placeholders_fall_back_to_defaults() -> None:
    snap = BusSnapshot.model_validate(
        {"busId": "BUS-002", "routeId": "--", "routeState": "", "observedAtMillis": 1_770_000_000}
    )
    assert snap.route_id is None
    assert snap.route_state == RouteState.NOT_STARTED
    assert snap.observed_at_millis == 1_770_000_000_000


def test_snapshot_unknown_states_map_to_unknown() -> None:
    snap = BusSnapshot(
        bus_id="BUS-002",
        route_state="teleporting",
        per_stop={"A": "skipped", "B": StopProgress(status=StopStatus.CURRENT)},
        observed_at_millis=1_770_000_000_000,
    )
    assert snap.route_state == RouteState.UNKNOWN
    assert snap.per_stop["A"].status == StopStatus.UNKNOWN
    assert snap.per_stop["B"].status == StopStatus.CURRENT


def test_snapshot_requires_bus_id_and_timestamp() -> None:
    with pytest.raises(ValidationError):
        BusSnapshot(bus_id="  ", observed_at_millis=1_770_000_000_000)
    with pytest.raises(ValidationError):
        BusSnapshot.model_validate({"busId": "BUS-002"})
    with pytest.raises(ValidationError):
        BusSnapshot(bus_id="BUS-002", observed_at_millis=0)


def test_route_sorts_stops_by_ordinal() -> None:
    route = Route.model_validate(
        {
            "id": "R",
            "stops": [
                {"id": "C", "name": "Charlie", "order": 3},
                {"id": "A", "name": "Alpha", "order": 1},
                {"id": "B", "name": "Bravo", "order": 2},
            ],
        }
    )
    assert [stop.id for stop in route.stops] == ["A", "B", "C"]
    assert route.index_of_stop_id("C") == 2
    assert route.index_of_stop_id("Z") == -1
    assert route.index_of_stop_name("  ALPHA ") == 0
    assert route.display_name == "your route"


def test_route_rejects_gaps_and_bad_ordinals() -> None:
    with pytest.raises(ValidationError):
        Route(id="R", stops=[Stop(id="A", ordinal=1), Stop(id="C", ordinal=3)])
    with pytest.raises(ValidationError):
        Stop(id="A", ordinal=0)


def test_student_assignment_aliases() -> None:
    student = StudentAssignment.model_validate(
        {"studentId": "s1", "routeId": "R", "stopId": "B", "fcmToken": " tok-1 "}
    )
    assert student.notification_target == "tok-1"

    without = StudentAssignment.model_validate({"studentId": "s2", "routeId": "R", "notificationTarget": ""})
    assert without.notification_target is None
    assert without.stop_id is None
