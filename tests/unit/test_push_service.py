import json

import httpx
import pytest

from smart_notify.services import push_service as push_module
from smart_notify.services.push_service import (
    InvalidPushTokenError,
    PushDeliveryError,
    PushService,
)

SEND_URL = "https://fcm.googleapis.com/v1/projects/demo/messages:send"


@pytest.fixture
def fcm(monkeypatch):
    """Route every AsyncClient in the push module through a scripted transport."""
    responses: list[httpx.Response] = []
    requests: list[httpx.Request] = []
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    async def no_sleep(seconds):
        return None

    monkeypatch.setattr(push_module.httpx, "AsyncClient", client_factory)
    monkeypatch.setattr(push_module.asyncio, "sleep", no_sleep)
    return responses, requests


def _error(status_code, code):
    body = {
        "error": {
            "status": code,
            "details": [
                {"@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError", "errorCode": code}
            ],
        }
    }
    return httpx.Response(status_code, json=body)


@pytest.mark.asyncio
async def test_send_success(fcm):
    responses, requests = fcm
    responses.append(httpx.Response(200, json={"name": "projects/demo/messages/1"}))

    receipt = await PushService(SEND_URL, "access").send({"token": "tok"})

    assert receipt.message_name == "projects/demo/messages/1"
    assert requests[0].headers["Authorization"] == "Bearer access"
    assert json.loads(requests[0].content) == {"message": {"token": "tok"}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [_error(404, "UNREGISTERED"), _error(400, "INVALID_ARGUMENT")],
)
async def test_dead_token_raises_invalid_token(fcm, response):
    fcm[0].append(response)

    with pytest.raises(InvalidPushTokenError):
        await PushService(SEND_URL, "access").send({"token": "tok"})


@pytest.mark.asyncio
async def test_other_errors_raise_delivery_error(fcm):
    fcm[0].append(_error(403, "SENDER_ID_MISMATCH"))

    with pytest.raises(PushDeliveryError) as exc_info:
        await PushService(SEND_URL, "access").send({"token": "tok"})

    assert not isinstance(exc_info.value, InvalidPushTokenError)
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_transient_status_is_retried(fcm):
    responses, requests = fcm
    responses.extend([httpx.Response(503), httpx.Response(200, json={"name": "m/2"})])

    receipt = await PushService(SEND_URL, "access").send({"token": "tok"})

    assert receipt.message_name == "m/2"
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_unconfigured_service_refuses():
    service = PushService(send_url=None, access_token=None)

    with pytest.raises(PushDeliveryError):
        await service.send({"token": "tok"})
