"""Stop index resolution.

Driver clients are inconsistent about how they identify the current stop:
some publish a per-stop ``current`` flag, some a stop id, some only a name
or an order number.  :func:`resolve_stop_index` tries each signal in a fixed
order and returns the first match.
"""

from __future__ import annotations

import logging

from pybustrack.models.directory import Route
from pybustrack.models.snapshot import BusSnapshot, StopProgress, StopStatus

_logger = logging.getLogger(__name__)

UNRESOLVED = -1


def _current_entry(snapshot: BusSnapshot) -> tuple[str, StopProgress] | None:
    """Return the first per-stop entry marked current, in source order."""
    current = [(stop_id, entry) for stop_id, entry in snapshot.per_stop.items() if entry.status == StopStatus.CURRENT]
    if not current:
        return None
    if len(current) > 1:
        _logger.debug(
            "Bus %s marks %d stops current; using %s",
            snapshot.bus_id,
            len(current),
            current[0][0],
        )
    return current[0]


def resolve_stop_index(snapshot: BusSnapshot, route: Route | None) -> int:
    """Compute the 0-based index of the bus's current stop on *route*.

    Resolution order (first success wins):

    1. per-stop entry marked ``CURRENT``, matched by stop id
    2. the same entry matched by name
    3. ``current_stop.stop_id``
    4. ``current_stop.name``
    5. ``current_stop.ordinal - 1`` clamped to the route's stop range
       (non-positive ordinals are ignored)

    Returns ``-1`` when nothing matches.  Callers must treat ``-1`` as "no
    change", never as the first stop.
    """
    if route is None or not route.stops:
        return UNRESOLVED

    entry = _current_entry(snapshot)
    if entry is not None:
        stop_id, progress = entry
        index = route.index_of_stop_id(stop_id)
        if index >= 0:
            return index
        index = route.index_of_stop_name(progress.name)
        if index >= 0:
            return index

    current = snapshot.current_stop
    if current is None:
        return UNRESOLVED

    index = route.index_of_stop_id(current.stop_id)
    if index >= 0:
        return index

    index = route.index_of_stop_name(current.name)
    if index >= 0:
        return index

    # Ordinals are 1-based; zero or negative means "not set".
    if current.ordinal is not None and current.ordinal > 0:
        return max(0, min(current.ordinal - 1, len(route.stops) - 1))

    return UNRESOLVED
