"""HTTP surface: webhooks, staff endpoints, reads and error mapping."""

from fastapi.testclient import TestClient

from tableorder.core.config import get_settings

from tests.conftest import T1_TOKEN


async def _create(api, *lines, table_id="T1", token=T1_TOKEN):
    lines = lines or (("MENU001", 2),)
    response = await api.post("/webhook/order-create", json={
        "tableId": table_id,
        "token": token,
        "items": [{"itemId": i, "name": "ignored", "qty": q} for i, q in lines],
    })
    return response


async def _items(api, order_id):
    response = await api.get(f"/api/orders/{order_id}")
    return [item["order_item_id"] for item in response.json()["items"]]


async def test_create_order_and_fetch_it(api):
    response = await _create(api)
    assert response.status_code == 200
    order_id = response.json()["orderId"]

    order = (await api.get(f"/api/orders/{order_id}")).json()
    assert order["status"] == "pending"
    assert order["table_id"] == "T1"
    assert order["total_cents"] == 12000
    [item] = order["items"]
    assert item["status"] == "pending"
    assert item["qty"] == 2
    assert item["price_cents"] == 6000


async def test_missing_or_wrong_secret_is_unauthorized(api):
    response = await api.post(
        "/webhook/order-create",
        json={"tableId": "T1", "token": T1_TOKEN, "items": []},
        headers={"X-Webhook-Secret": "wrong"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


async def test_expired_token_maps_to_401_with_message(api):
    response = await _create(api, table_id="T99", token="EXPIRED000")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "invalid_token"
    assert "scan the QR code" in body["message"]


async def test_empty_cart_maps_to_400(api):
    response = await api.post(
        "/webhook/order-create", json={"tableId": "T1", "token": T1_TOKEN, "items": []}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_items"


async def test_malformed_body_is_422(api):
    response = await api.post("/webhook/order-create", json={"items": []})
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "invalid_request"
    assert "tableId" in body["message"]


async def test_non_numeric_quantity_is_422_with_message(api):
    response = await api.post("/webhook/order-create", json={
        "tableId": "T1",
        "token": T1_TOKEN,
        "items": [{"itemId": "MENU001", "name": "Masala Dosa", "qty": "two"}],
    })
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "invalid_request"
    assert isinstance(body["message"], str)
    assert "qty" in body["message"]


async def test_kitchen_and_waiter_flow(api):
    order_id = (await _create(api, ("MENU001", 1), ("MENU009", 1))).json()["orderId"]
    ids = await _items(api, order_id)

    response = await api.post("/webhook/kitchen-update", json={
        "orderId": order_id,
        "updates": [{"orderItemId": i, "status": "preparing"} for i in ids],
    })
    assert response.status_code == 200
    assert response.content == b""
    assert (await api.get(f"/api/orders/{order_id}")).json()["status"] == "preparing"

    await api.post("/webhook/kitchen-update", json={
        "orderId": order_id,
        "updates": [{"orderItemId": i, "status": "ready"} for i in ids],
    })
    assert (await api.get(f"/api/orders/{order_id}")).json()["status"] == "ready"

    response = await api.post("/webhook/order-served", json={
        "orderId": order_id,
        "servedItems": ids,
        "timestamp": "2025-12-02T12:00:00Z",
    })
    assert response.status_code == 200
    assert (await api.get(f"/api/orders/{order_id}")).json()["status"] == "served"


async def test_kitchen_update_rejects_served_status(api):
    order_id = (await _create(api)).json()["orderId"]
    [item_id] = await _items(api, order_id)

    response = await api.post("/webhook/kitchen-update", json={
        "orderId": order_id,
        "updates": [{"orderItemId": item_id, "status": "served"}],
    })
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_request"
    assert "status" in response.json()["message"]


async def test_regression_maps_to_409(api):
    order_id = (await _create(api)).json()["orderId"]
    [item_id] = await _items(api, order_id)
    await api.post(f"/api/order-items/{item_id}/status", json={"status": "served"})

    response = await api.post(f"/api/order-items/{item_id}/status", json={"status": "pending"})
    assert response.status_code == 409
    assert response.json()["error"] == "illegal_transition"


async def test_stale_expected_status_maps_to_409_conflict(api):
    order_id = (await _create(api)).json()["orderId"]
    [item_id] = await _items(api, order_id)

    response = await api.post(
        f"/api/order-items/{item_id}/status",
        json={"status": "ready", "expectedStatus": "pending"},
    )
    assert response.json() == {"orderStatus": "ready"}

    response = await api.post(
        f"/api/order-items/{item_id}/status",
        json={"status": "served", "expectedStatus": "pending"},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


async def test_unknown_order_maps_to_404(api):
    response = await api.get("/api/orders/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_bill_then_stripe_webhook_marks_paid(api, payment_service):
    order_id = (await _create(api)).json()["orderId"]
    await api.post("/webhook/order-served", json={
        "orderId": order_id, "servedItems": await _items(api, order_id),
    })

    response = await api.post("/webhook/generate-bill", json={"orderId": order_id})
    assert response.status_code == 200
    assert response.json()["checkoutUrl"].startswith("https://checkout.stripe.com/mock/")

    [session_id] = payment_service.sessions
    response = await api.post(
        "/webhook/stripe-webhook",
        json=payment_service.completed_event(session_id),
        headers={"X-Webhook-Secret": ""},
    )
    assert response.status_code == 200
    assert (await api.get(f"/api/orders/{order_id}")).json()["status"] == "paid"


async def test_bill_before_served_is_409(api):
    order_id = (await _create(api)).json()["orderId"]
    response = await api.post("/webhook/generate-bill", json={"orderId": order_id})
    assert response.status_code == 409


async def test_provider_failure_maps_to_502(api, payment_service):
    order_id = (await _create(api)).json()["orderId"]
    await api.post("/webhook/order-served", json={
        "orderId": order_id, "servedItems": await _items(api, order_id),
    })
    payment_service.failure_rate = 1.0

    response = await api.post("/webhook/generate-bill", json={"orderId": order_id})
    assert response.status_code == 502
    assert response.json()["success"] is False


async def test_close_order_and_table_lookup(api):
    order_id = (await _create(api)).json()["orderId"]
    assert (await api.get("/api/tables/T1/order")).json()["order_id"] == order_id

    await api.post("/webhook/order-served", json={
        "orderId": order_id, "servedItems": await _items(api, order_id),
    })
    response = await api.post(f"/api/orders/{order_id}/close")
    assert response.json() == {"orderId": order_id, "status": "closed"}

    assert (await api.get("/api/tables/T1/order")).status_code == 404


async def test_list_orders_filters_by_status(api):
    first = (await _create(api)).json()["orderId"]
    second = (await _create(api)).json()["orderId"]
    [item_id] = await _items(api, second)
    await api.post(f"/api/order-items/{item_id}/status", json={"status": "preparing"})

    everything = (await api.get("/api/orders")).json()
    assert {o["order_id"] for o in everything["orders"]} == {first, second}

    preparing = (await api.get("/api/orders", params={"status": "preparing"})).json()
    assert [o["order_id"] for o in preparing["orders"]] == [second]
    assert preparing["total"] == 1


async def test_menu_lists_available_items(api):
    menu = (await api.get("/api/menu")).json()
    assert len(menu) == 10
    assert {m["menu_item_id"] for m in menu} >= {"MENU001", "MENU010"}


async def test_health(api):
    body = (await api.get("/health")).json()
    assert body["status"] == "operational"
    assert body["notifier"] == "healthy"


def test_order_stream_pushes_changes(app, monkeypatch):
    async def noop(*args, **kwargs):
        return None

    # Schema already exists in the test database
    monkeypatch.setattr("tableorder.main.init_db", noop)
    monkeypatch.setattr("tableorder.main.dispose_engine", noop)

    headers = {"X-Webhook-Secret": get_settings().webhook_secret}
    with TestClient(app, headers=headers) as client, client.websocket_connect("/ws/orders") as websocket:
        response = client.post("/webhook/order-create", json={
            "tableId": "T1",
            "token": T1_TOKEN,
            "items": [{"itemId": "MENU002", "qty": 3}],
        })
        assert response.status_code == 200

        message = websocket.receive_json()
        assert message["table"] == "orders"
        assert message["kind"] == "insert"
        assert message["record"]["order_id"] == response.json()["orderId"]
        assert message["record"]["items"][0]["qty"] == 3


async def test_kitchen_regression_maps_to_409(api):
    order_id = (await _create(api)).json()["orderId"]
    [item_id] = await _items(api, order_id)
    await api.post("/webhook/kitchen-update", json={
        "orderId": order_id, "updates": [{"orderItemId": item_id, "status": "ready"}],
    })

    response = await api.post("/webhook/kitchen-update", json={
        "orderId": order_id, "updates": [{"orderItemId": item_id, "status": "preparing"}],
    })
    assert response.status_code == 409
    assert response.json()["error"] == "illegal_transition"
