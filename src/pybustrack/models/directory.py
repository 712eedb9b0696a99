"""Directory records: routes, stops and student assignments."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from pybustrack.ingestion.normalize import safe_int, safe_str
from pybustrack.models._base import BusTrackBaseModel


class Stop(BusTrackBaseModel):
    """A boarding stop on a route.

    ``ordinal`` is 1-based; ``ordinal - 1`` is the stop index used by the
    resolver and the trip state machine.
    """

    id: str
    name: str = ""
    ordinal: int = Field(..., validation_alias=AliasChoices("ordinal", "order"))

    @field_validator("ordinal", mode="before")
    @classmethod
    def _coerce_ordinal(cls, value: Any) -> int:
        parsed = safe_int(value)
        if parsed is None or parsed < 1:
            raise ValueError("stop ordinal must be a positive integer")
        return parsed


class Route(BusTrackBaseModel):
    """A route and its ordered stop list."""

    id: str
    name: str | None = None
    stops: list[Stop] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_ordinals(self) -> Route:
        ordinals = [stop.ordinal for stop in self.stops]
        if ordinals != list(range(1, len(ordinals) + 1)):
            ordered = sorted(self.stops, key=lambda s: s.ordinal)
            if [s.ordinal for s in ordered] != list(range(1, len(ordered) + 1)):
                raise ValueError(f"route {self.id!r} stop ordinals must be 1..{len(ordered)} without gaps")
            object.__setattr__(self, "stops", ordered)
        return self

    @property
    def display_name(self) -> str:
        return self.name or "your route"

    def index_of_stop_id(self, stop_id: str | None) -> int:
        """Return the 0-based index of *stop_id*, or ``-1``."""
        if not stop_id:
            return -1
        for index, stop in enumerate(self.stops):
            if stop.id == stop_id:
                return index
        return -1

    def index_of_stop_name(self, name: str | None) -> int:
        """Return the 0-based index of the first stop named *name* (case-insensitive), or ``-1``."""
        wanted = _name_key(name)
        if not wanted:
            return -1
        for index, stop in enumerate(self.stops):
            if _name_key(stop.name) == wanted:
                return index
        return -1


def _name_key(name: str | None) -> str:
    return " ".join((name or "").split()).casefold()


class StudentAssignment(BusTrackBaseModel):
    """Binding of a student to a route and boarding stop.

    A student has at most one active assignment; reassignment replaces it
    wholesale.
    """

    student_id: str
    route_id: str
    stop_id: str | None = None
    notification_target: str | None = Field(
        default=None,
        validation_alias=AliasChoices("notificationTarget", "notification_target", "fcmToken"),
    )

    @field_validator("student_id", "route_id")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("identifier must be non-empty")
        return text

    @field_validator("stop_id", "notification_target", mode="before")
    @classmethod
    def _coerce_optional_str(cls, value: Any) -> str | None:
        return safe_str(value)
