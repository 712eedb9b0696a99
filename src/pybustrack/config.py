"""Runtime configuration for pybustrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pybustrack.exceptions import BusTrackConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(name: str, value: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(value.strip())
    except ValueError as exc:
        raise BusTrackConfigError(f"{name} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class BusTrackConfig:
    """Coordinator, stream and delivery configuration.

    Parameters
    ----------
    staleness_window_seconds : float
        Snapshots whose ``observedAtMillis`` is older than this (relative to
        processing time) still update the displayed trip state but never
        trigger notifications.  Defaults to 5 minutes.
    clock_skew_seconds : float
        How far a snapshot may lag the last applied snapshot for the same
        bus and still be applied.  Older snapshots are dropped as
        out-of-order.
    bus_queue_size : int
        Number of pending snapshots per bus before coalescing starts.  Past
        it, a snapshot is discarded only when the next pending one reports
        the same route, status and current stop.
    dispatch_concurrency : int
        Maximum number of concurrent deliveries within one dispatch.
    welcome_notifications : bool
        Send a confirmation message when a student registers a new
        notification target.
    mqtt_enabled : bool
        Whether :func:`~pybustrack.stream.create_stream` returns the MQTT
        bus record stream instead of the in-memory one.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix; bus nodes are published to ``{prefix}/{bus_id}``.
    mqtt_username : str or None
        Broker username.
    mqtt_password : str or None
        Broker password.
    mqtt_tls : bool
        Enable TLS for the broker connection.
    push_base_url : str
        Push gateway base URL.
    push_project_id : str
        Project id used to build the ``messages:send`` endpoint.
    push_access_token : str or None
        Bearer token for the push gateway.
    push_timeout_seconds : float
        Per-request timeout for push delivery.
    push_channel_id : str
        Android notification channel used for bus alerts.
    """

    staleness_window_seconds: float = 300.0
    clock_skew_seconds: float = 5.0
    bus_queue_size: int = 100
    dispatch_concurrency: int = 16
    welcome_notifications: bool = True
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_keepalive: int = 60
    mqtt_topic_prefix: str = "buses"
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False
    push_base_url: str = "https://fcm.googleapis.com"
    push_project_id: str = ""
    push_access_token: str | None = None
    push_timeout_seconds: float = 10.0
    push_channel_id: str = "bus_tracking"

    def __post_init__(self) -> None:
        if self.staleness_window_seconds <= 0:
            raise BusTrackConfigError("staleness_window_seconds must be positive")
        if self.clock_skew_seconds < 0:
            raise BusTrackConfigError("clock_skew_seconds must not be negative")
        if self.bus_queue_size < 1:
            raise BusTrackConfigError("bus_queue_size must be at least 1")
        if self.dispatch_concurrency < 1:
            raise BusTrackConfigError("dispatch_concurrency must be at least 1")

    @property
    def staleness_window_ms(self) -> int:
        return int(self.staleness_window_seconds * 1000)

    @property
    def clock_skew_ms(self) -> int:
        return int(self.clock_skew_seconds * 1000)

    @classmethod
    def from_env(cls, **overrides: Any) -> BusTrackConfig:
        """Create configuration from ``BUSTRACK_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "BUSTRACK_MQTT_HOST": "mqtt_host",
            "BUSTRACK_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "BUSTRACK_MQTT_USERNAME": "mqtt_username",
            "BUSTRACK_MQTT_PASSWORD": "mqtt_password",
            "BUSTRACK_PUSH_BASE_URL": "push_base_url",
            "BUSTRACK_PUSH_PROJECT_ID": "push_project_id",
            "BUSTRACK_PUSH_ACCESS_TOKEN": "push_access_token",
            "BUSTRACK_PUSH_CHANNEL_ID": "push_channel_id",
        }
        _ENV_INT_MAP = {
            "BUSTRACK_BUS_QUEUE_SIZE": "bus_queue_size",
            "BUSTRACK_DISPATCH_CONCURRENCY": "dispatch_concurrency",
            "BUSTRACK_MQTT_PORT": "mqtt_port",
            "BUSTRACK_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        _ENV_FLOAT_MAP = {
            "BUSTRACK_STALENESS_WINDOW_SECONDS": "staleness_window_seconds",
            "BUSTRACK_CLOCK_SKEW_SECONDS": "clock_skew_seconds",
            "BUSTRACK_PUSH_TIMEOUT_SECONDS": "push_timeout_seconds",
        }
        _ENV_BOOL_MAP = {
            "BUSTRACK_WELCOME_NOTIFICATIONS": ("welcome_notifications", True),
            "BUSTRACK_MQTT_ENABLED": ("mqtt_enabled", False),
            "BUSTRACK_MQTT_TLS": ("mqtt_tls", False),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
