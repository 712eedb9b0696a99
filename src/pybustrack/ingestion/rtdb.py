"""Realtime-database bus node ingestion.

Driver clients write one node per bus::

    {
      "location": {"latitude", "longitude", "accuracy", "routeId", "routeName",
                   "routeState", "timestamp", "updatedAt"},
      "routeState": "in_progress" | {"state": "in_progress", "updatedAt": ...},
      "currentStop": {"stopId", "name", "order", "status", "updatedAt"},
      "stops": {"<stopId>": {"name", "order", "status"}},
      "stopsByName": {"<stop name>": {"order", "status"}}
    }

This module translates such a node into a :class:`BusSnapshot`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pybustrack.exceptions import SnapshotParseError
from pybustrack.ingestion.normalize import normalize_key, normalize_timestamp_millis
from pybustrack.models.snapshot import BusSnapshot, RouteState

# Values driver builds have been seen to publish for each route state.
_ROUTE_STATE_ALIASES: dict[str, RouteState] = {
    "not_started": RouteState.NOT_STARTED,
    "idle": RouteState.NOT_STARTED,
    "pending": RouteState.NOT_STARTED,
    "in_progress": RouteState.IN_PROGRESS,
    "running": RouteState.IN_PROGRESS,
    "started": RouteState.IN_PROGRESS,
    "completed": RouteState.COMPLETED,
    "finished": RouteState.COMPLETED,
}


class _RtdbBusNode(BaseModel):
    """Minimal Pydantic envelope for a realtime-database bus node."""

    model_config = ConfigDict(extra="ignore")

    location: dict[str, Any] = Field(...)
    routeState: str | dict[str, Any] | None = None
    currentStop: dict[str, Any] | None = None
    stops: dict[str, Any] | None = None
    stopsByName: dict[str, Any] | None = None


def parse_route_state(value: Any) -> RouteState:
    """Map a free-form route state string onto :class:`RouteState`."""
    key = normalize_key(value)
    if key is None:
        return RouteState.NOT_STARTED
    return _ROUTE_STATE_ALIASES.get(key, RouteState.NOT_STARTED)


def _effective_route_state(node: _RtdbBusNode) -> RouteState:
    raw = node.routeState
    if isinstance(raw, str):
        return parse_route_state(raw)
    if isinstance(raw, dict) and raw.get("state") is not None:
        return parse_route_state(raw.get("state"))
    return parse_route_state(node.location.get("routeState"))


def _observed_at(node: _RtdbBusNode, received_at_ms: int) -> int:
    """Production time of the node as a whole.

    ``currentStop.updatedAt`` only moves when the bus reaches a stop, so it
    stays on :attr:`CurrentStop.status_updated_at_millis` and never stamps
    the snapshot.
    """
    route_state = node.routeState if isinstance(node.routeState, dict) else {}
    candidates = (
        node.location.get("updatedAt"),
        node.location.get("timestamp"),
        route_state.get("updatedAt"),
    )
    for candidate in candidates:
        ts = normalize_timestamp_millis(candidate)
        if ts is not None:
            return ts
    return received_at_ms


def _merge_stop_entries(node: _RtdbBusNode) -> dict[str, Any]:
    """``stops`` keyed by id, then ``stopsByName`` entries the id map lacks.

    Name-keyed entries get a ``name:`` prefixed key so they never match a
    stop id and always carry the name the resolver falls back to.
    """
    merged: dict[str, Any] = dict(node.stops or {})
    known_names = {normalize_key(entry.get("name")) for entry in merged.values() if isinstance(entry, dict)}
    for name, entry in (node.stopsByName or {}).items():
        if normalize_key(name) in known_names:
            continue
        if isinstance(entry, str):
            entry = {"status": entry}
        if not isinstance(entry, dict):
            continue
        merged[f"name:{name}"] = {"name": name, **entry}
    return merged


def parse_bus_node(bus_id: str, node: Any, *, received_at_ms: int) -> BusSnapshot | None:
    """Build a :class:`BusSnapshot` from a raw bus node.

    Returns ``None`` when the bus has not published a location yet.

    Raises
    ------
    SnapshotParseError
        When the node is present but malformed.
    """
    if node is None:
        return None
    if not isinstance(node, dict):
        raise SnapshotParseError(f"bus node for {bus_id} is not an object", bus_id=bus_id)
    if not node.get("location"):
        return None

    try:
        envelope = _RtdbBusNode.model_validate(node)
    except ValidationError as exc:
        raise SnapshotParseError(f"bus node for {bus_id} is malformed: {exc}", bus_id=bus_id) from exc

    location = envelope.location
    position: dict[str, Any] | None = None
    if location.get("latitude") is not None or location.get("lat") is not None:
        position = location

    try:
        return BusSnapshot.model_validate(
            {
                "busId": bus_id,
                "routeId": location.get("routeId"),
                "routeName": location.get("routeName"),
                "routeState": _effective_route_state(envelope),
                "position": position,
                "currentStop": envelope.currentStop,
                "perStopStatus": _merge_stop_entries(envelope),
                "observedAtMillis": _observed_at(envelope, received_at_ms),
            }
        )
    except ValidationError as exc:
        raise SnapshotParseError(f"bus node for {bus_id} is malformed: {exc}", bus_id=bus_id) from exc
