"""Custom exception hierarchy for pybustrack."""

from __future__ import annotations


class BusTrackError(Exception):
    """Base exception for all pybustrack errors."""


class BusTrackConfigError(BusTrackError):
    """Invalid or missing configuration."""


class SnapshotParseError(BusTrackError):
    """A raw stream payload could not be turned into a bus snapshot."""

    def __init__(self, message: str, *, bus_id: str = "") -> None:
        self.bus_id = bus_id
        super().__init__(message)


class StreamError(BusTrackError):
    """Subscription-level failure reported by a bus record stream."""

    def __init__(self, message: str, *, bus_id: str = "") -> None:
        self.bus_id = bus_id
        super().__init__(message)


class DeliveryError(BusTrackError):
    """Push delivery to a notification target failed."""

    def __init__(
        self,
        message: str,
        *,
        target: str = "",
        status_code: int | None = None,
        reason: str = "",
    ) -> None:
        self.target = target
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class DeliveryPermanentError(DeliveryError):
    """The notification target is invalid or no longer registered.

    The dispatcher removes the target from the student directory so
    later events skip it.
    """


class DeliveryTransientError(DeliveryError):
    """Delivery failed for a reason that may clear up (network, throttling, 5xx).

    Logged by the dispatcher; never retried inside the reconciliation core.
    """
