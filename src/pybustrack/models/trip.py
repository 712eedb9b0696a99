"""Trip state and trip event models.

:class:`TripState` is owned by exactly one
:class:`pybustrack.state.machine.TripStateMachine` and never persisted.
:class:`TripStateView` is the read-only projection handed to the
student-facing read path, and :class:`TripEvent` is the dispatch unit
between the state machine and the notification dispatcher.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TripStatus(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"


class TripEventKind(StrEnum):
    BUS_STARTED = "bus_started"
    STOP_APPROACHING = "stop_approaching"
    STOP_ARRIVED = "stop_arrived"
    STOP_PASSED = "stop_passed"
    TRIP_COMPLETED = "trip_completed"

    @property
    def is_stop_event(self) -> bool:
        return self in _STOP_EVENT_KINDS


_STOP_EVENT_KINDS = frozenset(
    {TripEventKind.STOP_APPROACHING, TripEventKind.STOP_ARRIVED, TripEventKind.STOP_PASSED}
)


class TripState(BaseModel):
    """Mutable per-bus trip state.

    ``notified_status`` is the status as of the last *fresh* snapshot; it is
    what notification transitions compare against, while ``status`` also
    follows stale snapshots for display.
    """

    model_config = ConfigDict(extra="forbid")

    route_id: str | None = None
    status: TripStatus = TripStatus.NOT_STARTED
    current_stop_index: int = -1
    last_updated_at_millis: int = 0
    bus_started_notified: bool = False
    last_notified_stop_index: int = -1
    initialized_from_first_snapshot: bool = False
    notified_status: TripStatus = TripStatus.NOT_STARTED

    def view(self) -> TripStateView:
        return TripStateView(
            status=self.status,
            current_stop_index=self.current_stop_index,
            last_updated_at_millis=self.last_updated_at_millis,
            route_id=self.route_id,
        )


class TripStateView(BaseModel):
    """Read-only projection of a bus's trip state."""

    model_config = ConfigDict(frozen=True)

    status: TripStatus
    current_stop_index: int
    last_updated_at_millis: int
    route_id: str | None = None


class TripEvent(BaseModel):
    """A notification-worthy transition for one bus.

    Stop events carry the affected stop; ``BUS_STARTED`` and
    ``TRIP_COMPLETED`` apply to every student on the route.
    """

    model_config = ConfigDict(frozen=True)

    bus_id: str
    route_id: str | None
    kind: TripEventKind
    stop_index: int | None = None
    stop_id: str | None = None
    stop_name: str | None = None
    route_name: str | None = None
    emitted_at_millis: int = Field(..., ge=0)
