"""Base model and enum for bus tracking payloads.

Every snapshot/directory model inherits from :class:`BusTrackBaseModel`
which provides:

* ``alias_generator=to_camel`` so camelCase keys written by the driver
  and student clients map automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips placeholder values
  (``""``, ``"--"``, NaN) so the field default is used.

State enums inherit from :class:`BusTrackEnum` which adds an ``UNKNOWN``
member and a ``_missing_`` hook that tolerates case and separator
variants (``"In-Progress"`` resolves to ``IN_PROGRESS``) and returns
``UNKNOWN`` for anything else.
"""

from __future__ import annotations

import enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})


class BusTrackEnum(enum.StrEnum):
    """Base for string state enums.

    Every subclass **must** define ``UNKNOWN = "unknown"``.
    """

    @classmethod
    def _missing_(cls, value: object) -> BusTrackEnum:
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == key:
                    return member
        unknown: BusTrackEnum = cls.UNKNOWN  # type: ignore[attr-defined]
        return unknown


class BusTrackBaseModel(BaseModel):
    """Base for driver/directory payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_placeholder_values(cls, values: Any) -> Any:
        """Strip placeholder values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return BusTrackBaseModel._clean_dict(values)
