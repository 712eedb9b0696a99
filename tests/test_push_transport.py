from __future__ import annotations

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pybustrack._transport import DeliveryOutcome, PushGatewayTransport, classify_push_error
from pybustrack.config import BusTrackConfig
from pybustrack.exceptions import BusTrackConfigError


def _fcm_error(status: str, message: str = "", error_code: str | None = None) -> dict[str, object]:
    error: dict[str, object] = {"code": 400, "status": status, "message": message}
    if error_code is not None:
        error["details"] = [
            {"@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError", "errorCode": error_code}
        ]
    return {"error": error}


@pytest.mark.parametrize(
    ("status_code", "payload", "expected"),
    [
        (404, _fcm_error("NOT_FOUND", "Requested entity was not found.", "UNREGISTERED"), "permanent"),
        (403, _fcm_error("PERMISSION_DENIED", "", "SENDER_ID_MISMATCH"), "permanent"),
        (404, None, "permanent"),
        (
            400,
            _fcm_error("INVALID_ARGUMENT", "The registration token is not a valid FCM registration token"),
            "permanent",
        ),
        (400, _fcm_error("INVALID_ARGUMENT", "Invalid JSON payload received."), "transient"),
        (429, _fcm_error("RESOURCE_EXHAUSTED", "", "QUOTA_EXCEEDED"), "transient"),
        (503, _fcm_error("UNAVAILABLE", "", "UNAVAILABLE"), "transient"),
        (500, "not json", "transient"),
    ],
)
def test_classify_push_error(status_code: int, payload: object, expected: str) -> None:
    outcome = classify_push_error(status_code, payload)
    if expected == "permanent":
        assert outcome == DeliveryOutcome.PERMANENT_FAILURE
    else:
        assert outcome == DeliveryOutcome.TRANSIENT_FAILURE


def test_transport_requires_project_id() -> None:
    with pytest.raises(BusTrackConfigError):
        PushGatewayTransport(BusTrackConfig(), http_session=None)  # type: ignore[arg-type]


def test_build_message_shape() -> None:
    config = BusTrackConfig(push_project_id="school-buses", push_channel_id="bus_alerts")
    transport = PushGatewayTransport(config, http_session=None)  # type: ignore[arg-type]

    data = {"type": "bus-started", "count": 3}
    message = transport.build_message("tok-1", "Bus Started!", "On its way", data)  # type: ignore[arg-type]

    assert message["message"]["token"] == "tok-1"
    assert message["message"]["notification"] == {"title": "Bus Started!", "body": "On its way"}
    assert message["message"]["data"] == {"type": "bus-started", "count": "3"}
    assert message["message"]["android"]["priority"] == "high"
    assert message["message"]["android"]["notification"]["channel_id"] == "bus_alerts"


@pytest.mark.asyncio
async def test_deliver_against_local_gateway() -> None:
    received: list[dict[str, object]] = []

    async def messages_send(request: web.Request) -> web.Response:
        assert request.match_info["project"] == "school-buses"
        assert request.headers["authorization"] == "Bearer access-1"
        body = await request.json()
        received.append(body)
        if body["message"]["token"] == "tok-dead":
            return web.json_response(_fcm_error("NOT_FOUND", "", "UNREGISTERED"), status=404)
        if body["message"]["token"] == "tok-busy":
            return web.json_response(_fcm_error("UNAVAILABLE"), status=503)
        return web.json_response({"name": "projects/school-buses/messages/1"})

    app = web.Application()
    app.router.add_post("/v1/projects/{project}/messages:send", messages_send)

    async with TestServer(app) as server, aiohttp.ClientSession() as session:
        config = BusTrackConfig(
            push_base_url=str(server.make_url("/")),
            push_project_id="school-buses",
            push_access_token="access-1",
        )
        transport = PushGatewayTransport(config, session)

        assert await transport.deliver("tok-ok", "t", "b", {"type": "welcome"}) == DeliveryOutcome.OK
        assert await transport.deliver("tok-dead", "t", "b", {}) == DeliveryOutcome.PERMANENT_FAILURE
        assert await transport.deliver("tok-busy", "t", "b", {}) == DeliveryOutcome.TRANSIENT_FAILURE

    assert len(received) == 3
    assert received[0]["message"]["data"] == {"type": "welcome"}  # type: ignore[index]


@pytest.mark.asyncio
async def test_deliver_connection_error_is_transient() -> None:
    config = BusTrackConfig(push_base_url="http://127.0.0.1:9", push_project_id="school-buses")
    async with aiohttp.ClientSession() as session:
        transport = PushGatewayTransport(config, session)
        assert await transport.deliver("tok-1", "t", "b", {}) == DeliveryOutcome.TRANSIENT_FAILURE
