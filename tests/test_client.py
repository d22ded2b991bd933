"""Retrying HTTP client for the ordering webhooks."""

import json

import httpx
import pytest

from tableorder.client import ApiError, GatewayUnavailable, OrderingClient


class Recorder:
    """MockTransport handler replaying canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler, delays):
    async def sleep(seconds):
        delays.append(seconds)

    return OrderingClient(
        base_url="http://gateway.test",
        webhook_secret="s3cret",
        retry_attempts=2,
        retry_delay_seconds=1.0,
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


async def test_create_order_sends_secret_and_payload():
    handler = Recorder(httpx.Response(200, json={"orderId": "abc"}))
    delays = []
    async with make_client(handler, delays) as client:
        order_id = await client.create_order("T1", "TOKEN", [{"itemId": "MENU001", "qty": 2}])

    assert order_id == "abc"
    [request] = handler.requests
    assert request.url.path == "/webhook/order-create"
    assert request.headers["X-Webhook-Secret"] == "s3cret"
    assert json.loads(request.read()) == {
        "tableId": "T1",
        "token": "TOKEN",
        "items": [{"itemId": "MENU001", "qty": 2}],
    }
    assert delays == []


async def test_server_errors_are_retried_with_doubling_delay():
    handler = Recorder(
        httpx.Response(503),
        httpx.Response(429),
        httpx.Response(200, json={"checkoutUrl": "https://pay"}),
    )
    delays = []
    async with make_client(handler, delays) as client:
        assert await client.generate_bill("o1") == "https://pay"

    assert len(handler.requests) == 3
    assert delays == [1.0, 2.0]


async def test_transport_errors_are_retried():
    handler = Recorder(
        httpx.ConnectError("refused"),
        httpx.Response(200),
    )
    delays = []
    async with make_client(handler, delays) as client:
        await client.update_kitchen_status("o1", [{"orderItemId": "i1", "status": "ready"}])

    assert len(handler.requests) == 2
    assert delays == [1.0]


async def test_gives_up_after_all_attempts():
    handler = Recorder(httpx.Response(500), httpx.Response(502), httpx.Response(500))
    delays = []
    async with make_client(handler, delays) as client:
        with pytest.raises(GatewayUnavailable, match="Failed after 3 attempts"):
            await client.mark_order_served("o1", ["i1"])

    assert len(handler.requests) == 3
    assert delays == [1.0, 2.0]


@pytest.mark.parametrize("status", [400, 401, 404, 409])
async def test_client_errors_are_not_retried(status):
    handler = Recorder(httpx.Response(status, json={"success": False, "message": "nope"}))
    delays = []
    async with make_client(handler, delays) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.create_order("T1", "TOKEN", [{"itemId": "MENU001", "qty": 1}])

    assert exc_info.value.status_code == status
    assert exc_info.value.message == "nope"
    assert len(handler.requests) == 1
    assert delays == []


async def test_error_without_json_body_uses_fallback_message():
    handler = Recorder(httpx.Response(400, text="bad"))
    async with make_client(handler, []) as client:
        with pytest.raises(ApiError, match="Failed to generate bill"):
            await client.generate_bill("o1")


async def test_list_detail_becomes_readable_message():
    handler = Recorder(httpx.Response(422, json={"detail": [
        {"loc": ["body", "items", 0, "qty"], "msg": "Input should be a valid integer"},
        {"loc": ["body", "token"], "msg": "Field required"},
    ]}))
    async with make_client(handler, []) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.create_order("T1", "TOKEN", [{"itemId": "MENU001", "qty": "two"}])

    assert exc_info.value.status_code == 422
    assert exc_info.value.message == "Input should be a valid integer; Field required"
