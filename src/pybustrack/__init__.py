"""pybustrack - Bus progress reconciliation and student notifications."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pybustrack")
except PackageNotFoundError:
    __version__ = "0+local"
from pybustrack._transport import DeliveryOutcome, DeliveryTransport, PushGatewayTransport
from pybustrack.config import BusTrackConfig
from pybustrack.coordinator import NotificationCoordinator
from pybustrack.directory import InMemoryRouteDirectory, InMemoryStudentDirectory, RouteDirectory, StudentDirectory
from pybustrack.exceptions import (
    BusTrackConfigError,
    BusTrackError,
    DeliveryError,
    DeliveryPermanentError,
    DeliveryTransientError,
    SnapshotParseError,
    StreamError,
)
from pybustrack.models import (
    BusSnapshot,
    CurrentStop,
    Position,
    Route,
    RouteState,
    Stop,
    StopProgress,
    StopStatus,
    StudentAssignment,
    TripEvent,
    TripEventKind,
    TripState,
    TripStateView,
    TripStatus,
)
from pybustrack.notify.dispatcher import NotificationDispatcher
from pybustrack.state.machine import TripStateMachine
from pybustrack.state.resolver import resolve_stop_index
from pybustrack.stream import BusRecordStream, InMemoryBusRecordStream, MqttBusRecordStream, create_stream

__all__ = [
    "__version__",
    "BusRecordStream",
    "BusSnapshot",
    "BusTrackConfig",
    "BusTrackConfigError",
    "BusTrackError",
    "CurrentStop",
    "DeliveryError",
    "DeliveryOutcome",
    "DeliveryPermanentError",
    "DeliveryTransientError",
    "DeliveryTransport",
    "InMemoryBusRecordStream",
    "InMemoryRouteDirectory",
    "InMemoryStudentDirectory",
    "MqttBusRecordStream",
    "NotificationCoordinator",
    "NotificationDispatcher",
    "Position",
    "PushGatewayTransport",
    "Route",
    "RouteDirectory",
    "RouteState",
    "SnapshotParseError",
    "Stop",
    "StopProgress",
    "StopStatus",
    "StreamError",
    "StudentAssignment",
    "StudentDirectory",
    "TripEvent",
    "TripEventKind",
    "TripState",
    "TripStateMachine",
    "TripStateView",
    "TripStatus",
    "create_stream",
    "resolve_stop_index",
]
