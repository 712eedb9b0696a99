"""Helpers for safe debug logging.

Notification targets are device tokens and the push gateway needs a bearer
token, so neither should reach the logs in clear.  This module redacts
sensitive fields before emitting DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "fcmtoken",
        "target",
        "notificationtarget",
        "notification_target",
        "accesstoken",
        "access_token",
        "authorization",
        "cookie",
    }
)


def mask_target(target: str | None, *, keep: int = 6) -> str:
    """Return a short, non-reversible label for a notification target."""
    if not target:
        return "<none>"
    if len(target) <= keep * 2:
        return "<redacted>"
    return f"{target[:keep]}…{target[-keep:]}"


def _is_sensitive(key: object) -> bool:
    return str(key).lower().replace("-", "_") in _SENSITIVE_VALUE_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* safe to log.

    Mappings are walked recursively; values under sensitive keys become
    ``"<redacted>"`` and long strings are cut at *max_string* characters.
    """
    if _depth > 20:
        return "<max-depth>"

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, Mapping):
        return {
            str(key): "<redacted>"
            if _is_sensitive(key)
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
