"""Bus snapshot model.

One :class:`BusSnapshot` is produced for every update a driver client
publishes for its bus.  Field names follow the driver payload (camelCase
on the wire, snake_case in Python).
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pybustrack.ingestion.normalize import normalize_timestamp_millis, safe_float, safe_int, safe_str
from pybustrack.models._base import BusTrackBaseModel, BusTrackEnum

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class RouteState(BusTrackEnum):
    """Coarse trip phase reported by the driver client."""

    UNKNOWN = "unknown"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StopStatus(BusTrackEnum):
    """Per-stop progress marker."""

    UNKNOWN = "unknown"
    PENDING = "pending"
    CURRENT = "current"
    REACHED = "reached"


# ------------------------------------------------------------------
# Nested records
# ------------------------------------------------------------------


class Position(BusTrackBaseModel):
    """GPS fix of the bus."""

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy: float | None = None
    captured_at_millis: int | None = Field(
        default=None,
        validation_alias=AliasChoices("capturedAtMillis", "captured_at_millis", "timestamp", "updatedAt"),
    )

    @field_validator("latitude", "longitude", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("captured_at_millis", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int | None:
        return normalize_timestamp_millis(value)


class CurrentStop(BusTrackBaseModel):
    """The stop the driver client last marked as current."""

    stop_id: str | None = None
    name: str | None = None
    ordinal: int | None = Field(default=None, validation_alias=AliasChoices("ordinal", "order"))
    """1-based position of the stop on the route."""
    status_updated_at_millis: int | None = Field(
        default=None,
        validation_alias=AliasChoices("statusUpdatedAtMillis", "status_updated_at_millis", "updatedAt"),
    )

    @field_validator("stop_id", "name", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("ordinal", mode="before")
    @classmethod
    def _coerce_ordinal(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("status_updated_at_millis", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int | None:
        return normalize_timestamp_millis(value)


class StopProgress(BusTrackBaseModel):
    """Status of one stop as published by the driver client.

    Drivers publish either a bare status string or an object carrying the
    stop's name and order as well; both are accepted.
    """

    status: StopStatus = StopStatus.PENDING
    name: str | None = None
    ordinal: int | None = Field(default=None, validation_alias=AliasChoices("ordinal", "order"))

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> StopStatus:
        return StopStatus(value) if isinstance(value, str) else StopStatus.UNKNOWN

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("ordinal", mode="before")
    @classmethod
    def _coerce_ordinal(cls, value: Any) -> int | None:
        return safe_int(value)


# ------------------------------------------------------------------
# Snapshot
# ------------------------------------------------------------------


class BusSnapshot(BusTrackBaseModel):
    """Point-in-time record of a bus's route state, position and stop progress.

    Parameters
    ----------
    bus_id : str
        Stable bus identifier (e.g. ``"BUS-002"``).
    route_id : str or None
        Route currently served; ``None`` before assignment.
    route_name : str or None
        Display name of the route, when the driver client publishes one.
    route_state : RouteState
        Coarse trip phase.
    position : Position or None
        Latest GPS fix.
    current_stop : CurrentStop or None
        Stop the driver marked as current.
    per_stop : dict[str, StopProgress]
        Per-stop status keyed by stop id, in source order.
    observed_at_millis : int
        Source timestamp of the snapshot (not receipt time).
    """

    bus_id: str
    route_id: str | None = None
    route_name: str | None = None
    route_state: RouteState = RouteState.NOT_STARTED
    position: Position | None = None
    current_stop: CurrentStop | None = None
    per_stop: dict[str, StopProgress] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("perStopStatus", "per_stop_status", "perStop", "per_stop", "stops"),
    )
    observed_at_millis: int = Field(
        ...,
        validation_alias=AliasChoices("observedAtMillis", "observed_at_millis", "observedAt"),
    )

    @field_validator("bus_id")
    @classmethod
    def _normalize_bus_id(cls, value: str) -> str:
        bus_id = value.strip()
        if not bus_id:
            raise ValueError("bus_id must be non-empty")
        return bus_id

    @field_validator("route_id", "route_name", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("route_state", mode="before")
    @classmethod
    def _coerce_route_state(cls, value: Any) -> RouteState:
        if isinstance(value, RouteState):
            return value
        return RouteState(value) if isinstance(value, str) else RouteState.UNKNOWN

    @field_validator("per_stop", mode="before")
    @classmethod
    def _coerce_per_stop(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        coerced: dict[str, Any] = {}
        for stop_id, entry in value.items():
            if isinstance(entry, str):
                coerced[str(stop_id)] = {"status": entry}
            elif isinstance(entry, (dict, StopProgress)):
                coerced[str(stop_id)] = entry
        return coerced

    @field_validator("observed_at_millis", mode="before")
    @classmethod
    def _coerce_observed_at(cls, value: Any) -> int:
        ts = normalize_timestamp_millis(value)
        if ts is None:
            raise ValueError("observed_at_millis must be a positive epoch timestamp")
        return ts

    @property
    def per_stop_status(self) -> dict[str, StopStatus]:
        """Plain ``stop_id -> status`` view of :attr:`per_stop`."""
        return {stop_id: entry.status for stop_id, entry in self.per_stop.items()}
