"""Pydantic models for bus snapshots, directory records and trip state."""

from pybustrack.models._base import BusTrackBaseModel, BusTrackEnum
from pybustrack.models.directory import Route, Stop, StudentAssignment
from pybustrack.models.snapshot import BusSnapshot, CurrentStop, Position, RouteState, StopProgress, StopStatus
from pybustrack.models.trip import TripEvent, TripEventKind, TripState, TripStateView, TripStatus

__all__ = [
    "BusSnapshot",
    "BusTrackBaseModel",
    "BusTrackEnum",
    "CurrentStop",
    "Position",
    "Route",
    "RouteState",
    "Stop",
    "StopProgress",
    "StopStatus",
    "StudentAssignment",
    "TripEvent",
    "TripEventKind",
    "TripState",
    "TripStateView",
    "TripStatus",
]
