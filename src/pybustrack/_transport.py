"""Push delivery transport.

The dispatcher only needs a ``deliver(target, title, body, data)``
capability.  :class:`PushGatewayTransport` implements it on top of the FCM
HTTP v1 ``messages:send`` endpoint with aiohttp.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from pybustrack._redact import mask_target, redact_for_log
from pybustrack.config import BusTrackConfig
from pybustrack.exceptions import BusTrackConfigError

_logger = logging.getLogger(__name__)

# FCM error codes that mean the token will never work again.
_PERMANENT_ERROR_CODES: frozenset[str] = frozenset({"UNREGISTERED", "SENDER_ID_MISMATCH"})


class DeliveryOutcome(StrEnum):
    OK = "ok"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


class DeliveryTransport(Protocol):
    """Structural delivery interface used by the dispatcher.

    Implementations either return a :class:`DeliveryOutcome` or raise a
    :class:`~pybustrack.exceptions.DeliveryError` subclass.
    """

    async def deliver(
        self,
        target: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> DeliveryOutcome: ...


def _fcm_error_code(payload: Any) -> tuple[str, str, str]:
    """Extract ``(status, errorCode, message)`` from an FCM error body."""
    if not isinstance(payload, dict):
        return "", "", ""
    error = payload.get("error")
    if not isinstance(error, dict):
        return "", "", ""
    status = str(error.get("status") or "")
    message = str(error.get("message") or "")
    error_code = ""
    details = error.get("details")
    if isinstance(details, list):
        for detail in details:
            if isinstance(detail, dict) and detail.get("errorCode"):
                error_code = str(detail["errorCode"])
                break
    return status, error_code, message


def classify_push_error(status_code: int, payload: Any) -> DeliveryOutcome:
    """Map a non-200 gateway response onto the delivery taxonomy."""
    status, error_code, message = _fcm_error_code(payload)
    if error_code in _PERMANENT_ERROR_CODES or status == "UNREGISTERED":
        return DeliveryOutcome.PERMANENT_FAILURE
    if status_code == 404:
        return DeliveryOutcome.PERMANENT_FAILURE
    if status_code == 400 and "INVALID_ARGUMENT" in (status, error_code) and "registration token" in message.lower():
        return DeliveryOutcome.PERMANENT_FAILURE
    return DeliveryOutcome.TRANSIENT_FAILURE


class PushGatewayTransport:
    """aiohttp-based push delivery to the FCM HTTP v1 API."""

    def __init__(self, config: BusTrackConfig, http_session: aiohttp.ClientSession) -> None:
        if not config.push_project_id:
            raise BusTrackConfigError("push_project_id is required for push delivery")
        self._config = config
        self._http = http_session
        self._url = f"{config.push_base_url.rstrip('/')}/v1/projects/{config.push_project_id}/messages:send"
        self._timeout = aiohttp.ClientTimeout(total=config.push_timeout_seconds)

    def build_message(self, target: str, title: str, body: str, data: Mapping[str, str]) -> dict[str, Any]:
        return {
            "message": {
                "token": target,
                "notification": {"title": title, "body": body},
                "data": {str(k): str(v) for k, v in data.items()},
                "android": {
                    "priority": "high",
                    "notification": {
                        "channel_id": self._config.push_channel_id,
                        "icon": "ic_notification",
                        "sound": "default",
                    },
                },
            }
        }

    async def deliver(
        self,
        target: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> DeliveryOutcome:
        message = self.build_message(target, title, body, data)
        headers = {"content-type": "application/json; charset=UTF-8"}
        if self._config.push_access_token:
            headers["authorization"] = f"Bearer {self._config.push_access_token}"

        _logger.debug("POST %s message=%s", self._url, redact_for_log(message))

        try:
            async with self._http.post(
                self._url,
                data=json.dumps(message),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status == 200:
                    return DeliveryOutcome.OK
                status_code = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            _logger.debug("Push delivery to %s failed: %s", mask_target(target), exc)
            return DeliveryOutcome.TRANSIENT_FAILURE

        try:
            payload: Any = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        outcome = classify_push_error(status_code, payload)
        _logger.debug(
            "Push gateway HTTP %d for %s -> %s: %s",
            status_code,
            mask_target(target),
            outcome,
            text[:200],
        )
        return outcome
