"""Per-bus trip state machine.

:class:`TripStateMachine` owns the :class:`~pybustrack.models.trip.TripState`
of a single bus.  It ingests that bus's snapshots strictly in arrival order
and decides which notification events fire.

Rules, in evaluation order for each accepted snapshot:

- The first snapshot ever seen only initializes state; it never emits.
  A client (or this process) attaching mid-trip must not replay
  "bus started".
- A snapshot for a different route than the one being tracked is a route
  reassignment: the state is replaced with a fresh not-started baseline
  before the snapshot is evaluated.
- Stale snapshots update the displayed status and stop index but never
  emit.
- ``BUS_STARTED`` fires once per trip; leaving ``RUNNING`` re-arms it.
- Stop events fire per distinct student stop when the resolved index moves
  while the bus is running.
- ``TRIP_COMPLETED`` fires on ``RUNNING -> COMPLETED``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from pybustrack.models.directory import Route, StudentAssignment
from pybustrack.models.snapshot import BusSnapshot
from pybustrack.models.trip import TripEvent, TripEventKind, TripState, TripStateView, TripStatus
from pybustrack.state.policy import derive_status, is_fresh, resolve_transition, should_accept_snapshot
from pybustrack.state.resolver import resolve_stop_index

_logger = logging.getLogger(__name__)

DEFAULT_STALENESS_WINDOW_MS = 5 * 60 * 1000
DEFAULT_SKEW_ALLOWANCE_MS = 5 * 1000


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def _student_stop_indices(route: Route, assignments: Iterable[StudentAssignment]) -> list[int]:
    indices: set[int] = set()
    for assignment in assignments:
        if assignment.route_id != route.id:
            continue
        index = route.index_of_stop_id(assignment.stop_id)
        if index >= 0:
            indices.add(index)
    return sorted(indices)


class TripStateMachine:
    """Reconciles one bus's snapshot stream into trip state and events."""

    def __init__(
        self,
        bus_id: str,
        *,
        staleness_window_ms: int = DEFAULT_STALENESS_WINDOW_MS,
        skew_allowance_ms: int = DEFAULT_SKEW_ALLOWANCE_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._bus_id = bus_id
        self._staleness_window_ms = staleness_window_ms
        self._skew_allowance_ms = skew_allowance_ms
        self._clock = clock
        self._state: TripState | None = None

    @property
    def bus_id(self) -> str:
        return self._bus_id

    @property
    def initialized(self) -> bool:
        return self._state is not None

    def view(self) -> TripStateView | None:
        """Read-only projection of the current state (``None`` before the first snapshot)."""
        if self._state is None:
            return None
        return self._state.view()

    def reset(self) -> None:
        """Discard all trip state; the next snapshot initializes it again."""
        self._state = None

    def ingest(
        self,
        snapshot: BusSnapshot,
        route: Route | None,
        assignments: Iterable[StudentAssignment] = (),
    ) -> list[TripEvent]:
        """Apply *snapshot* and return the events it triggers.

        Parameters
        ----------
        snapshot
            Next snapshot for this bus, in arrival order.
        route
            The route the bus is serving, or ``None`` when unknown.
        assignments
            Student assignments for that route; used to decide which stops
            get approaching/arrived/passed events.
        """
        if snapshot.bus_id != self._bus_id:
            raise ValueError(f"snapshot for bus {snapshot.bus_id!r} sent to machine for {self._bus_id!r}")

        now_ms = self._clock()
        incoming_status = derive_status(snapshot.route_state)
        resolved_index = resolve_stop_index(snapshot, route)
        route_id = route.id if route is not None else snapshot.route_id
        route_name = snapshot.route_name or (route.name if route is not None else None)

        state = self._state
        if state is None:
            self._state = TripState(
                route_id=route_id,
                status=incoming_status,
                current_stop_index=resolved_index,
                last_updated_at_millis=snapshot.observed_at_millis,
                bus_started_notified=incoming_status == TripStatus.RUNNING,
                last_notified_stop_index=resolved_index,
                initialized_from_first_snapshot=True,
                notified_status=incoming_status,
            )
            _logger.debug(
                "Bus %s initialized status=%s stop_index=%d route=%s",
                self._bus_id,
                incoming_status,
                resolved_index,
                route_id,
            )
            return []

        if not should_accept_snapshot(
            last_applied_ms=state.last_updated_at_millis,
            incoming_ms=snapshot.observed_at_millis,
            skew_allowance_ms=self._skew_allowance_ms,
        ):
            _logger.debug(
                "Bus %s dropped out-of-order snapshot observed_at=%d last_applied=%d",
                self._bus_id,
                snapshot.observed_at_millis,
                state.last_updated_at_millis,
            )
            return []

        if route_id is not None and state.route_id is not None and route_id != state.route_id:
            _logger.info("Bus %s reassigned from route %s to %s", self._bus_id, state.route_id, route_id)
            state = TripState(
                route_id=route_id,
                last_updated_at_millis=state.last_updated_at_millis,
                initialized_from_first_snapshot=True,
            )
            self._state = state
        elif state.route_id is None and route_id is not None:
            state.route_id = route_id

        previous_notified = state.notified_status
        status = resolve_transition(state.status, incoming_status)
        if status != incoming_status:
            _logger.debug(
                "Bus %s ignored regressive status %s (keeping %s)",
                self._bus_id,
                incoming_status,
                status,
            )
        state.status = status
        if resolved_index >= 0:
            state.current_stop_index = resolved_index
        state.last_updated_at_millis = max(state.last_updated_at_millis, snapshot.observed_at_millis)

        if not is_fresh(
            observed_at_ms=snapshot.observed_at_millis,
            now_ms=now_ms,
            staleness_window_ms=self._staleness_window_ms,
        ):
            _logger.debug(
                "Bus %s snapshot is stale (age=%dms); display only",
                self._bus_id,
                now_ms - snapshot.observed_at_millis,
            )
            return []

        events: list[TripEvent] = []

        if status == TripStatus.RUNNING:
            if not state.bus_started_notified:
                events.append(self._event(TripEventKind.BUS_STARTED, state, route, route_name, now_ms))
                state.bus_started_notified = True
        else:
            state.bus_started_notified = False

        if (
            status == TripStatus.RUNNING
            and route is not None
            and resolved_index >= 0
            and resolved_index != state.last_notified_stop_index
        ):
            previous_index = state.last_notified_stop_index
            for stop_index in _student_stop_indices(route, assignments):
                kind: TripEventKind | None = None
                if resolved_index == stop_index - 1:
                    kind = TripEventKind.STOP_APPROACHING
                elif resolved_index == stop_index:
                    kind = TripEventKind.STOP_ARRIVED
                elif resolved_index == stop_index + 1 and previous_index == stop_index:
                    kind = TripEventKind.STOP_PASSED
                if kind is not None:
                    events.append(self._event(kind, state, route, route_name, now_ms, stop_index=stop_index))
            state.last_notified_stop_index = resolved_index

        if status == TripStatus.COMPLETED and previous_notified == TripStatus.RUNNING:
            events.append(self._event(TripEventKind.TRIP_COMPLETED, state, route, route_name, now_ms))

        state.notified_status = status

        if events:
            _logger.debug(
                "Bus %s emitted %s",
                self._bus_id,
                ", ".join(event.kind.value for event in events),
            )
        return events

    def _event(
        self,
        kind: TripEventKind,
        state: TripState,
        route: Route | None,
        route_name: str | None,
        now_ms: int,
        *,
        stop_index: int | None = None,
    ) -> TripEvent:
        stop_id: str | None = None
        stop_name: str | None = None
        if route is not None and stop_index is not None:
            stop = route.stops[stop_index]
            stop_id = stop.id
            stop_name = stop.name
        return TripEvent(
            bus_id=self._bus_id,
            route_id=state.route_id,
            kind=kind,
            stop_index=stop_index,
            stop_id=stop_id,
            stop_name=stop_name,
            route_name=route_name,
            emitted_at_millis=now_ms,
        )
