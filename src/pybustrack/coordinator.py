"""Notification coordinator.

Wires a :class:`~pybustrack.stream.BusRecordStream` to one
:class:`~pybustrack.state.machine.TripStateMachine` per bus and hands the
resulting events to the :class:`~pybustrack.notify.dispatcher.NotificationDispatcher`.

Each watched bus gets its own pending buffer and worker task, so snapshots
for a bus are processed strictly in arrival order while buses run
independently.  When the buffer grows past ``bus_queue_size``, a snapshot is
only discarded if the one right after it reports the same progress (route,
status and current stop); snapshots that carry a transition are never lost.
Dispatch is handed off as a separate task; the worker never waits for
delivery before taking the next snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pybustrack.config import BusTrackConfig
from pybustrack.directory import RouteDirectory, StudentDirectory
from pybustrack.models.directory import Route, StudentAssignment
from pybustrack.models.snapshot import BusSnapshot, RouteState, StopStatus
from pybustrack.models.trip import TripEvent, TripStateView
from pybustrack.notify.dispatcher import NotificationDispatcher
from pybustrack.state.machine import TripStateMachine
from pybustrack.stream import BusRecordStream, Unsubscribe

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


_ProgressKey = tuple[Any, ...]


def _progress_key(snapshot: BusSnapshot) -> _ProgressKey:
    """Everything in *snapshot* the trip state machine can react to."""
    current = next(
        ((stop_id, entry.name) for stop_id, entry in snapshot.per_stop.items() if entry.status == StopStatus.CURRENT),
        None,
    )
    stop = snapshot.current_stop
    return (
        snapshot.route_id,
        snapshot.route_state,
        current,
        (stop.stop_id, stop.name, stop.ordinal) if stop is not None else None,
    )


@dataclass(eq=False)
class _BusWorker:
    """Pending snapshots, task and state machine owned by one watched bus."""

    bus_id: str
    machine: TripStateMachine
    pending: deque[BusSnapshot] = field(default_factory=deque)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    idle: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None
    unsubscribe: Unsubscribe | None = None
    closed: bool = False
    coalesced: int = 0

    def __post_init__(self) -> None:
        self.idle.set()


class NotificationCoordinator:
    """Runs the per-bus reconciliation workers.

    Usage::

        async with NotificationCoordinator(
            config,
            stream=stream,
            routes=routes,
            students=students,
            dispatcher=dispatcher,
        ) as coordinator:
            coordinator.watch("BUS-002")
            ...
            state = coordinator.get_trip_state("BUS-002")
    """

    def __init__(
        self,
        config: BusTrackConfig,
        *,
        stream: BusRecordStream,
        routes: RouteDirectory,
        students: StudentDirectory,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._stream = stream
        self._routes = routes
        self._students = students
        self._dispatcher = dispatcher
        self._clock = clock
        self._workers: dict[str, _BusWorker] = {}
        self._dispatch_tasks: set[asyncio.Task[int]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> NotificationCoordinator:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Watching buses
    # ------------------------------------------------------------------

    @property
    def watched_buses(self) -> list[str]:
        return sorted(self._workers)

    def watch(self, bus_id: str) -> None:
        """Start observing *bus_id*; a no-op when already watched.

        Must be called from within the running event loop.
        """
        if bus_id in self._workers:
            return

        worker = _BusWorker(
            bus_id=bus_id,
            machine=TripStateMachine(
                bus_id,
                staleness_window_ms=self._config.staleness_window_ms,
                skew_allowance_ms=self._config.clock_skew_ms,
                clock=self._clock,
            ),
        )
        self._workers[bus_id] = worker
        worker.task = asyncio.create_task(self._run_worker(worker), name=f"bustrack-{bus_id}")
        worker.unsubscribe = self._stream.subscribe(
            bus_id,
            lambda snapshot: self._enqueue(worker, snapshot),
            lambda error: self._on_stream_error(bus_id, error),
        )
        _logger.debug("Watching bus %s", bus_id)

    async def unwatch(self, bus_id: str) -> None:
        """Stop observing *bus_id* and discard its trip state.

        Dispatches already handed off are left to complete.
        """
        worker = self._workers.pop(bus_id, None)
        if worker is None:
            return
        worker.closed = True
        if worker.unsubscribe is not None:
            worker.unsubscribe()

        worker.pending.clear()
        worker.wakeup.set()
        if worker.task is not None:
            await worker.task
        worker.machine.reset()
        _logger.debug("Stopped watching bus %s", bus_id)

    async def close(self) -> None:
        """Unwatch every bus and wait for outstanding dispatches."""
        for bus_id in list(self._workers):
            await self.unwatch(bus_id)
        await self.drain()

    async def wait_idle(self) -> None:
        """Wait until every pending snapshot has been through its state machine.

        Dispatches handed off along the way may still be running.
        """
        for worker in list(self._workers.values()):
            await worker.idle.wait()

    async def drain(self) -> None:
        """Wait until pending snapshots are processed and their dispatches finished."""
        await self.wait_idle()
        while self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_trip_state(self, bus_id: str) -> TripStateView | None:
        """Canonical ``(status, current_stop_index, last_updated)`` for *bus_id*."""
        worker = self._workers.get(bus_id)
        if worker is None:
            return None
        return worker.machine.view()

    # ------------------------------------------------------------------
    # Student registration
    # ------------------------------------------------------------------

    async def register_student(self, assignment: StudentAssignment) -> StudentAssignment | None:
        """Store *assignment*, replacing the student's previous one.

        Sends a confirmation message when the student's notification target
        is new or changed.  Returns the previous assignment.
        """
        previous = self._students.upsert(assignment)
        target = assignment.notification_target
        if not target or not self._config.welcome_notifications:
            return previous
        if previous is not None and previous.notification_target == target:
            return previous

        _logger.info("Student %s registered a new notification target", assignment.student_id)
        await self._dispatcher.send_welcome(assignment)
        return previous

    # ------------------------------------------------------------------
    # Snapshot processing
    # ------------------------------------------------------------------

    def _enqueue(self, worker: _BusWorker, snapshot: BusSnapshot) -> None:
        if worker.closed:
            return
        pending = worker.pending
        pending.append(snapshot)
        if len(pending) > self._config.bus_queue_size:
            self._coalesce(worker)
        worker.idle.clear()
        worker.wakeup.set()

    def _coalesce(self, worker: _BusWorker) -> None:
        """Drop the oldest pending snapshot superseded by an identical-progress successor."""
        pending = worker.pending
        keys = [_progress_key(snapshot) for snapshot in pending]
        for index in range(len(keys) - 1):
            if keys[index] == keys[index + 1]:
                del pending[index]
                worker.coalesced += 1
                _logger.debug(
                    "Coalesced snapshot for bus %s (%d coalesced so far)",
                    worker.bus_id,
                    worker.coalesced,
                )
                return
        _logger.warning(
            "Bus %s has %d pending snapshots, all carrying progress; keeping them",
            worker.bus_id,
            len(pending),
        )

    def _on_stream_error(self, bus_id: str, error: Exception) -> None:
        _logger.warning("Stream error for bus %s: %s", bus_id, error)

    async def _run_worker(self, worker: _BusWorker) -> None:
        while True:
            if not worker.pending:
                worker.idle.set()
                if worker.closed:
                    return
                await worker.wakeup.wait()
                worker.wakeup.clear()
                continue
            snapshot = worker.pending.popleft()
            try:
                self.handle_snapshot(worker.machine, snapshot)
            except Exception:
                _logger.exception("Failed to process snapshot for bus %s", worker.bus_id)

    def _lookup_route(self, snapshot: BusSnapshot) -> tuple[str | None, Route | None]:
        route_id = snapshot.route_id or self._routes.get_route_for_bus(snapshot.bus_id)
        if route_id is None:
            return None, None
        route = self._routes.get_route(route_id)
        if route is None:
            _logger.info("Route %s for bus %s not found in directory", route_id, snapshot.bus_id)
        return route_id, route

    def handle_snapshot(self, machine: TripStateMachine, snapshot: BusSnapshot) -> list[TripEvent]:
        """Run one snapshot through *machine* and hand off the resulting events.

        A route with no assigned students still goes through the machine, so
        a bus reassigned to such a route keeps its trip state and
        :meth:`get_trip_state` keeps answering for it.  The machine is only
        discarded by :meth:`unwatch`.
        """
        route_id, route = self._lookup_route(snapshot)
        if route_id is not None and snapshot.route_id is None:
            snapshot = snapshot.model_copy(update={"route_id": route_id})

        students: list[StudentAssignment] = []
        if route_id is not None:
            students = self._students.get_students_for_route(route_id)
            if not students:
                _logger.debug("No students assigned to route %s", route_id)

        events = machine.ingest(snapshot, route, students)
        for event in events:
            if event.kind.is_stop_event:
                affected = [s for s in students if s.stop_id == event.stop_id]
            else:
                affected = list(students)
            self._hand_off(event, affected)
        return events

    def _hand_off(self, event: TripEvent, affected: list[StudentAssignment]) -> None:
        task = asyncio.create_task(self._dispatch(event, affected))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def _dispatch(self, event: TripEvent, affected: list[StudentAssignment]) -> int:
        try:
            return await self._dispatcher.dispatch(event, affected)
        except Exception:
            _logger.exception("Dispatch of %s for bus %s failed", event.kind, event.bus_id)
            return 0
