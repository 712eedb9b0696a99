from __future__ import annotations

from typing import Any

from pybustrack.models.directory import Route, Stop
from pybustrack.models.snapshot import BusSnapshot
from pybustrack.state.resolver import resolve_stop_index

ROUTE = Route(
    id="R1",
    name="Route no.3",
    stops=[
        Stop(id="s-a", name="Alpha Gate", ordinal=1),
        Stop(id="s-b", name="Bravo Square", ordinal=2),
        Stop(id="s-c", name="Charlie Hall", ordinal=3),
        Stop(id="s-d", name="Delta Park", ordinal=4),
    ],
)


def _snapshot(**fields: Any) -> BusSnapshot:
    return BusSnapshot(bus_id="BUS-002", route_id="R1", observed_at_millis=1_770_000_000_000, **fields)


def test_current_flag_matched_by_id() -> None:
    snap = _snapshot(per_stop={"s-a": "reached", "s-b": "reached", "s-c": "current", "s-d": "pending"})
    assert resolve_stop_index(snap, ROUTE) == 2


def test_current_flag_matched_by_name_when_id_unknown() -> None:
    snap = _snapshot(per_stop={"legacy-7": {"status": "current", "name": "bravo square"}})
    assert resolve_stop_index(snap, ROUTE) == 1


def test_current_stop_id_used_when_no_current_flag() -> None:
    snap = _snapshot(
        per_stop={"s-a": "reached"},
        current_stop={"stopId": "s-d", "name": "Alpha Gate", "order": 1},
    )
    assert resolve_stop_index(snap, ROUTE) == 3


def test_current_stop_name_used_when_id_unknown() -> None:
    snap = _snapshot(current_stop={"stopId": "zzz", "name": "Charlie  Hall", "order": 1})
    assert resolve_stop_index(snap, ROUTE) == 2


def test_current_stop_ordinal_is_last_resort_and_clamped() -> None:
    assert resolve_stop_index(_snapshot(current_stop={"order": 2}), ROUTE) == 1
    assert resolve_stop_index(_snapshot(current_stop={"order": 9}), ROUTE) == 3


def test_current_flag_wins_over_conflicting_ordinal() -> None:
    snap = _snapshot(
        per_stop={"s-b": "current"},
        current_stop={"order": 4},
    )
    for _ in range(5):
        assert resolve_stop_index(snap, ROUTE) == 1


def test_multiple_current_flags_resolve_to_first_in_source_order() -> None:
    snap = _snapshot(per_stop={"s-c": "current", "s-a": "current"})
    assert resolve_stop_index(snap, ROUTE) == 2


def test_unresolved_is_minus_one_not_zero() -> None:
    assert resolve_stop_index(_snapshot(), ROUTE) == -1
    assert resolve_stop_index(_snapshot(current_stop={"stopId": "nope", "name": "Nowhere"}), ROUTE) == -1
    assert resolve_stop_index(_snapshot(current_stop={"order": 0}), ROUTE) == -1


def test_unknown_route_is_unresolved() -> None:
    snap = _snapshot(per_stop={"s-b": "current"})
    assert resolve_stop_index(snap, None) == -1
    assert resolve_stop_index(snap, Route(id="R2", stops=[])) == -1
