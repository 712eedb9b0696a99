"""Deterministic trip-state policy.

This module intentionally contains *no* payload parsing.  The ingestion /
Pydantic boundary is responsible for producing normalized snapshots with
millisecond timestamps.
"""

from __future__ import annotations

from pybustrack.models.snapshot import RouteState
from pybustrack.models.trip import TripStatus


def derive_status(route_state: RouteState) -> TripStatus:
    """Map the driver's route state onto the canonical trip status."""
    if route_state == RouteState.COMPLETED:
        return TripStatus.COMPLETED
    if route_state == RouteState.IN_PROGRESS:
        return TripStatus.RUNNING
    return TripStatus.NOT_STARTED


def is_fresh(*, observed_at_ms: int, now_ms: int, staleness_window_ms: int) -> bool:
    """Whether a snapshot is recent enough to drive notifications.

    Snapshots stamped slightly in the future (driver clock ahead) count as
    fresh.
    """
    return (now_ms - observed_at_ms) <= staleness_window_ms


def should_accept_snapshot(
    *,
    last_applied_ms: int | None,
    incoming_ms: int,
    skew_allowance_ms: int,
) -> bool:
    """Decide whether a snapshot may update the trip state at all.

    A snapshot older than the last applied one (beyond the skew allowance)
    is a late delivery and is dropped.
    """
    if last_applied_ms is None:
        return True
    return incoming_ms >= (last_applied_ms - skew_allowance_ms)


def resolve_transition(current: TripStatus, incoming: TripStatus) -> TripStatus:
    """Apply forward-only progression to a status change.

    - ``RUNNING -> NOT_STARTED`` is treated as a glitch and ignored.
    - ``COMPLETED`` is terminal; only a route reassignment (handled by the
      state machine with a fresh state) starts a new trip.
    """
    if current == TripStatus.COMPLETED:
        return current
    if current == TripStatus.RUNNING and incoming == TripStatus.NOT_STARTED:
        return current
    return incoming
