"""Notification message catalog."""

from __future__ import annotations

from dataclasses import dataclass

from pybustrack.models.trip import TripEvent, TripEventKind

_UNKNOWN_STOP = "Unknown Stop"


@dataclass(frozen=True)
class NotificationMessage:
    """Rendered push message."""

    title: str
    body: str
    data: dict[str, str]


@dataclass(frozen=True)
class _Template:
    title: str
    body: str
    data_type: str


CATALOG: dict[TripEventKind, _Template] = {
    TripEventKind.BUS_STARTED: _Template(
        title="🚌 Bus Started!",
        body="Your bus ({bus}) has started on {route}! Track it in real-time.",
        data_type="bus-started",
    ),
    TripEventKind.STOP_APPROACHING: _Template(
        title="📍 Bus Approaching!",
        body='Your stop "{stop}" is coming up next! Get ready.',
        data_type="bus-approaching",
    ),
    TripEventKind.STOP_ARRIVED: _Template(
        title="🎯 Bus Arrived!",
        body='Bus has arrived at "{stop}"! Time to board.',
        data_type="bus-arrived",
    ),
    TripEventKind.STOP_PASSED: _Template(
        title="⚠️ Bus Passed Your Stop",
        body='The bus has passed "{stop}". Please contact the driver if needed.',
        data_type="bus-passed",
    ),
    TripEventKind.TRIP_COMPLETED: _Template(
        title="✅ Trip Completed",
        body="Bus {bus} has completed its route. See you next time!",
        data_type="bus-completed",
    ),
}

WELCOME = NotificationMessage(
    title="🔔 Notifications Enabled",
    body="You'll receive alerts when your bus starts, approaches, and arrives at your stop.",
    data={"type": "welcome"},
)


def render(event: TripEvent) -> NotificationMessage:
    """Build the push message for *event*."""
    template = CATALOG[event.kind]
    stop_name = event.stop_name or _UNKNOWN_STOP
    body = template.body.format(
        bus=event.bus_id,
        route=event.route_name or "your route",
        stop=stop_name,
    )
    data = {
        "type": template.data_type,
        "busNumber": event.bus_id,
        "routeId": event.route_id or "",
    }
    if event.kind.is_stop_event:
        data["stopName"] = stop_name
        data["stopId"] = event.stop_id or ""
    return NotificationMessage(title=template.title, body=body, data=data)
