"""Normalization helpers.

Centralizes defensive parsing of driver-published payloads.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def normalize_key(value: Any) -> str | None:
    """Normalize a free-form state string (``"In-Progress"`` -> ``"in_progress"``)."""
    text = safe_str(value)
    if text is None:
        return None
    return text.lower().replace("-", "_").replace(" ", "_")


def normalize_timestamp_millis(value: Any) -> int | None:
    """Normalize payload timestamps to epoch milliseconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Seconds (< 1e11) -> milliseconds
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts < 1e11:
        ts *= 1000.0
    return int(ts)
