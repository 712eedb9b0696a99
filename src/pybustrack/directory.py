"""Route and student directories.

The reconciliation core only reads from the directories, with one
exception: a notification target that the push gateway reports as
permanently invalid is removed so later events skip it.  The in-memory
implementations below guard their maps with a lock because deliveries run
concurrently with lookups.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol

from pybustrack.models.directory import Route, Stop, StudentAssignment

_logger = logging.getLogger(__name__)


class RouteDirectory(Protocol):
    """Read-only route lookup."""

    def get_route(self, route_id: str) -> Route | None: ...

    def get_route_stops(self, route_id: str) -> list[Stop]: ...

    def get_route_for_bus(self, bus_id: str) -> str | None: ...


class StudentDirectory(Protocol):
    """Student assignment lookup, plus registration and invalid-target cleanup."""

    def get_students_for_route(self, route_id: str) -> list[StudentAssignment]: ...

    def upsert(self, assignment: StudentAssignment) -> StudentAssignment | None: ...

    def remove_target(self, student_id: str, target: str) -> bool: ...


class InMemoryRouteDirectory:
    """Route directory backed by a dict, with optional bus-to-route assignments."""

    def __init__(self, routes: Iterable[Route] = (), *, bus_routes: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._routes: dict[str, Route] = {route.id: route for route in routes}
        self._bus_routes: dict[str, str] = dict(bus_routes or {})

    def add_route(self, route: Route) -> None:
        with self._lock:
            self._routes[route.id] = route

    def assign_bus(self, bus_id: str, route_id: str | None) -> None:
        """Record (or clear) the route a bus is assigned to."""
        with self._lock:
            if route_id is None:
                self._bus_routes.pop(bus_id, None)
            else:
                self._bus_routes[bus_id] = route_id

    def get_route(self, route_id: str) -> Route | None:
        with self._lock:
            return self._routes.get(route_id)

    def get_route_stops(self, route_id: str) -> list[Stop]:
        route = self.get_route(route_id)
        return list(route.stops) if route is not None else []

    def get_route_for_bus(self, bus_id: str) -> str | None:
        with self._lock:
            return self._bus_routes.get(bus_id)


class InMemoryStudentDirectory:
    """Student directory keyed by student id."""

    def __init__(self, assignments: Iterable[StudentAssignment] = ()) -> None:
        self._lock = threading.Lock()
        self._students: dict[str, StudentAssignment] = {a.student_id: a for a in assignments}

    def upsert(self, assignment: StudentAssignment) -> StudentAssignment | None:
        """Store *assignment*, replacing any previous one; returns the previous assignment."""
        with self._lock:
            previous = self._students.get(assignment.student_id)
            self._students[assignment.student_id] = assignment
            return previous

    def remove(self, student_id: str) -> StudentAssignment | None:
        with self._lock:
            return self._students.pop(student_id, None)

    def get(self, student_id: str) -> StudentAssignment | None:
        with self._lock:
            return self._students.get(student_id)

    def get_students_for_route(self, route_id: str) -> list[StudentAssignment]:
        with self._lock:
            return [a for a in self._students.values() if a.route_id == route_id]

    def remove_target(self, student_id: str, target: str) -> bool:
        """Clear *student_id*'s notification target if it is still *target*.

        Idempotent: returns ``False`` when the student is gone or has since
        registered a different target.
        """
        with self._lock:
            current = self._students.get(student_id)
            if current is None or current.notification_target != target:
                return False
            self._students[student_id] = current.model_copy(update={"notification_target": None})
        _logger.debug("Cleared notification target for student %s", student_id)
        return True
