import pytest

from pattern_lab.cqrs import scheduler


# ── /api/outbox ──────────────────────────────────


ORDER = {
    "customer_name": "Park",
    "customer_email": "park@example.com",
    "product_name": "Monitor",
    "quantity": 3,
    "price": "199.99",
}


@pytest.mark.asyncio
async def test_outbox_order_lifecycle(client):
    resp = await client.post("/api/outbox/orders", json=ORDER)
    assert resp.status_code == 200
    order = resp.json()
    assert order["status"] == "PENDING"
    assert order["total_amount"] == pytest.approx(599.97)

    resp = await client.put(f"/api/outbox/orders/{order['id']}/confirm")
    assert resp.status_code == 200
    assert resp.json()["status"] == "CONFIRMED"

    resp = await client.put(f"/api/outbox/orders/{order['id']}/confirm")
    assert resp.status_code == 409

    resp = await client.get(f"/api/outbox/orders/number/{order['order_number']}")
    assert resp.json()["id"] == order["id"]

    resp = await client.get("/api/outbox/orders/status/CONFIRMED")
    assert [o["id"] for o in resp.json()] == [order["id"]]

    resp = await client.get("/api/outbox/events/unprocessed")
    assert [e["event_type"] for e in resp.json()] == ["ORDER_CREATED", "ORDER_CONFIRMED"]


@pytest.mark.asyncio
async def test_outbox_validation_and_not_found(client):
    resp = await client.post("/api/outbox/orders", json={**ORDER, "quantity": 0})
    assert resp.status_code == 422
    resp = await client.post("/api/outbox/orders", json={**ORDER, "customer_email": "not-an-email"})
    assert resp.status_code == 422

    assert (await client.get("/api/outbox/orders/42")).status_code == 404
    assert (await client.put("/api/outbox/orders/42/cancel")).status_code == 404
    assert (await client.get("/api/outbox/orders/status/LOST")).status_code == 422


@pytest.mark.asyncio
async def test_outbox_repeated_cancel_is_conflict(client):
    order = (await client.post("/api/outbox/orders", json=ORDER)).json()

    assert (await client.put(f"/api/outbox/orders/{order['id']}/cancel")).status_code == 200
    resp = await client.put(f"/api/outbox/orders/{order['id']}/cancel")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Order is already cancelled"

    events = (await client.get("/api/outbox/events")).json()
    assert [e["event_type"] for e in events].count("ORDER_CANCELLED") == 1


@pytest.mark.asyncio
async def test_manual_event_processing(client):
    await client.post("/api/outbox/orders", json=ORDER)
    [event] = (await client.get("/api/outbox/events")).json()

    resp = await client.post(f"/api/outbox/events/{event['id']}/process")
    assert resp.status_code == 200
    assert resp.json()["processed"] is True

    assert (await client.post(f"/api/outbox/events/{event['id']}/process")).status_code == 409
    assert (await client.post("/api/outbox/events/999/process")).status_code == 404

    stats = (await client.get("/api/outbox/stats")).json()
    assert stats["total_events"] == 1
    assert stats["processed_percentage"] == 100.0


# ── /api/cqrs ────────────────────────────────────


@pytest.mark.asyncio
async def test_cqrs_command_then_query(client, app):
    resp = await client.post("/api/cqrs/products/commands", json={
        "name": "Tablet",
        "description": "10 inch",
        "price": 300.0,
        "category_id": "electronics",
        "stock_quantity": 4,
    })
    assert resp.status_code == 201
    product_id = resp.json()["id"]

    # 投影前はリードモデルにまだ存在しない
    assert (await client.get(f"/api/cqrs/products/queries/{product_id}")).status_code == 404

    resp = await client.post("/api/cqrs/orders/commands", json={
        "customer_id": "carol",
        "product_items": [{"product_id": product_id, "quantity": 2}],
        "shipping_address": "Incheon",
    })
    assert resp.status_code == 201
    order_id = resp.json()["id"]

    resp = await client.put("/api/cqrs/orders/commands/status", json={
        "order_id": order_id,
        "new_status": "SHIPPED",
    })
    assert resp.status_code == 200

    await scheduler.process_events(app.state.session_factory)

    product = (await client.get(f"/api/cqrs/products/queries/{product_id}")).json()
    assert product["stock_status"] == "IN_STOCK"

    catalog = (await client.get(
        "/api/cqrs/products/queries/catalog", params={"category": "electronics", "in_stock": "true"}
    )).json()
    assert [p["id"] for p in catalog] == [product_id]

    order = (await client.get(f"/api/cqrs/orders/queries/{order_id}")).json()
    assert order["status"] == "SHIPPED"
    assert len(order["timeline"]) == 2

    history = (await client.get("/api/cqrs/orders/queries/history", params={"customer_id": "carol"})).json()
    assert [o["id"] for o in history] == [order_id]

    events = (await client.get("/api/cqrs/events")).json()
    assert [e["event_type"] for e in events] == ["ProductCreated", "OrderCreated", "OrderStatusChanged"]


@pytest.mark.asyncio
async def test_cqrs_errors(client):
    resp = await client.post("/api/cqrs/products/commands", json={
        "name": "Pen", "price": 1.0, "stock_quantity": 1,
    })
    product_id = resp.json()["id"]

    resp = await client.post("/api/cqrs/orders/commands", json={
        "customer_id": "dave",
        "product_items": [{"product_id": product_id, "quantity": 5}],
    })
    assert resp.status_code == 409

    resp = await client.post("/api/cqrs/orders/commands", json={"customer_id": "dave", "product_items": []})
    assert resp.status_code == 422

    resp = await client.post("/api/cqrs/orders/commands/cancel", json={
        "order_id": "00000000-0000-0000-0000-000000000000",
    })
    assert resp.status_code == 404


# ── /api/observer ────────────────────────────────


@pytest.mark.asyncio
async def test_observer_subscribe_publish_unsubscribe(client, app):
    resp = await client.post("/api/observer/subscribe/channel", json={"channel_name": "KBS"})
    assert resp.json()["observer_id"] == "channel_KBS"
    await client.post("/api/observer/subscribe/email", json={"name": "Kim", "email": "kim@example.com"})
    await client.post("/api/observer/subscribe/mobile", json={"app_name": "NewsApp", "device_id": "d1"})

    resp = await client.post("/api/observer/news", json={"news": "Markets rally"})
    assert resp.json()["subscriber_count"] == 3

    detail = (await client.get("/api/observer/subscriber/mobile_d1")).json()
    assert detail["type"] == "MobileApp"
    assert detail["notification_count"] == 1

    resp = await client.put("/api/observer/subscriber/mobile_d1/push", json={"enabled": False})
    assert resp.json()["push_enabled"] is False
    await client.post("/api/observer/news", json={"news": "Second story"})
    assert (await client.get("/api/observer/subscriber/mobile_d1")).json()["notification_count"] == 1

    resp = await client.delete("/api/observer/unsubscribe/email_kim@example.com")
    assert resp.json()["total_subscribers"] == 2
    assert (await client.delete("/api/observer/unsubscribe/email_kim@example.com")).status_code == 404

    listing = (await client.get("/api/observer/subscribers")).json()
    assert listing["total_count"] == 2
    assert listing["latest_news"] == "Second story"


@pytest.mark.asyncio
async def test_observer_demo_and_reset(client):
    assert (await client.post("/api/observer/news", json={"news": "   "})).status_code == 422

    resp = await client.post("/api/observer/demo")
    assert resp.json()["subscribers_added"] == 4

    # 同じ ID での再登録は重複しない
    await client.post("/api/observer/demo")
    assert (await client.get("/api/observer/subscribers")).json()["total_count"] == 4

    resp = await client.delete("/api/observer/reset")
    assert resp.json()["total_subscribers"] == 0
    assert (await client.get("/api/observer/subscriber/channel_KBS")).status_code == 404


# ── /api/strategy ────────────────────────────────


@pytest.mark.asyncio
async def test_strategy_payments_and_statistics(client):
    resp = await client.post("/api/strategy/payment/creditcard", json={
        "amount": 10000,
        "card_number": "1234-5678-9012-3456",
        "holder_name": "Kim",
        "cvv": "123",
        "expiry_date": "12/30",
    })
    body = resp.json()
    assert body["success"] is True
    assert body["fee"] == 250.0
    assert body["transaction_id"].startswith("CC-")
    assert body["account"]["card_number"] == "**** **** **** 3456"

    resp = await client.post("/api/strategy/payment/paypal", json={
        "amount": 1000, "email": "a@b.com", "password": "pw", "verified": False,
    })
    assert resp.json()["success"] is False

    resp = await client.post("/api/strategy/payment/banktransfer", json={
        "amount": 5000,
        "bank_name": "Demo",
        "account_number": "123-456-789012",
        "account_holder": "Lee",
        "pin": "123456",
    })
    assert resp.json()["fee"] == 1000.0
    assert resp.json()["account"]["account_number"] == "***-***-9012"

    stats = (await client.get("/api/strategy/statistics")).json()
    assert stats["total_transactions"] == 3
    assert stats["successful_transactions"] == 2
    assert stats["total_amount"] == 15000.0
    assert stats["total_fees"] == 1250.0

    history = (await client.get("/api/strategy/payment-history")).json()
    assert len(history["history"]) == 3

    await client.delete("/api/strategy/payment-history")
    assert (await client.get("/api/strategy/statistics")).json()["total_transactions"] == 0


@pytest.mark.asyncio
async def test_strategy_fee_calculation_and_demo(client):
    resp = await client.post("/api/strategy/calculate-fee", json={
        "amount": 10000, "payment_method": "PayPal", "email": "a@b.com", "password": "pw", "balance": 100000,
    })
    body = resp.json()
    assert body["fee"] == pytest.approx(375.0)
    assert body["payment_possible"] is True

    resp = await client.post("/api/strategy/calculate-fee", json={"amount": 100, "payment_method": "bitcoin"})
    assert resp.status_code == 400

    resp = await client.post("/api/strategy/demo")
    results = resp.json()["results"]
    assert all(r["success"] for r in results.values())
    assert resp.json()["statistics"]["success_rate"] == 100.0


@pytest.mark.asyncio
async def test_strategy_rejects_non_finite_amounts(client):
    headers = {"Content-Type": "application/json"}
    for literal in ("NaN", "Infinity", "-Infinity"):
        resp = await client.post(
            "/api/strategy/payment/cash", content=f'{{"amount": {literal}}}', headers=headers
        )
        assert resp.status_code == 422

    resp = await client.post(
        "/api/strategy/calculate-fee", content='{"amount": NaN, "payment_method": "cash"}', headers=headers
    )
    assert resp.status_code == 422

    # 不正な金額は履歴に残らない
    resp = await client.get("/api/strategy/payment-history")
    assert resp.status_code == 200
    assert resp.json()["history"] == []


@pytest.mark.asyncio
async def test_strategy_rejects_invalid_account_details(client):
    bank = {
        "amount": 5000,
        "bank_name": "Demo",
        "account_number": "123-456-789012",
        "account_holder": "Lee",
        "pin": "123456",
    }
    for invalid in ({"bank_name": " "}, {"account_holder": ""}, {"balance": -1}, {"pin": "12ab56"}):
        resp = await client.post("/api/strategy/payment/banktransfer", json={**bank, **invalid})
        assert resp.status_code == 400

    resp = await client.post("/api/strategy/payment/cash", json={"amount": 10, "available_cash": -1})
    assert resp.status_code == 400

    resp = await client.post("/api/strategy/calculate-fee", json={"amount": 100, "payment_method": "banktransfer"})
    assert resp.status_code == 400

    assert (await client.get("/api/strategy/statistics")).json()["total_transactions"] == 0


@pytest.mark.asyncio
async def test_fee_calculation_requires_positive_amount(client):
    for amount in (0, -10_000):
        resp = await client.post("/api/strategy/calculate-fee", json={"amount": amount, "payment_method": "cash"})
        assert resp.status_code == 422

    resp = await client.post("/api/strategy/calculate-fee", json={"amount": 10_000, "payment_method": "cash"})
    assert resp.json()["fee"] == 0.0


# ── /api/structured ──────────────────────────────


@pytest.mark.asyncio
async def test_structured_task_scopes(client):
    ok = [{"name": "a", "delay": 0.01}, {"name": "b", "delay": 0}]
    broken = [*ok, {"name": "x", "delay": 0, "fail": True}, {"name": "slow", "delay": 5}]

    body = (await client.post("/api/structured/fail-fast", json={"tasks": ok})).json()
    assert body == {"success": True, "results": ["Processed: a", "Processed: b"], "elapsed_ms": body["elapsed_ms"]}

    body = (await client.post("/api/structured/fail-fast", json={"tasks": broken})).json()
    assert body["success"] is False
    assert "Task x failed" in body["error"]
    assert body["elapsed_ms"] < 5000

    slow_only = {"tasks": [{"name": "slow", "delay": 5}], "timeout": 0.05}
    body = (await client.post("/api/structured/timeout", json=slow_only)).json()
    assert body["success"] is False
    assert body["error"] == "Timed out after 0.05s"

    body = (await client.post("/api/structured/first-success", json={"tasks": broken})).json()
    assert body["result"] == "Processed: b"

    body = (await client.post("/api/structured/partial", json={"tasks": broken[:3]})).json()
    assert body["success_count"] == 2
    assert body["failures"] == ["Task x failed"]

    body = (await client.post("/api/structured/majority", json={"tasks": broken, "timeout": 0.2})).json()
    assert body["has_majority"] is False
    assert body["total_tasks"] == 4

    assert (await client.post("/api/structured/fail-fast", json={"tasks": []})).status_code == 422
    resp = await client.post("/api/structured/timeout", json={"tasks": ok, "timeout": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_structured_parallel_processing(client):
    stats = (await client.post("/api/structured/parallel/statistics", json={"numbers": [1, 2, 3, 4]})).json()
    assert stats["sum"] == 10
    assert stats["average"] == 2.5
    assert stats["even_count"] == 2

    body = (await client.post(
        "/api/structured/parallel/sum-of-squares", json={"numbers": [1, 2, 3, 4, 5], "chunk_size": 2}
    )).json()
    assert body == {"sum_of_squares": 55, "chunks": 3}


@pytest.mark.asyncio
async def test_structured_dashboard(client):
    body = (await client.get("/api/structured/dashboard/u7")).json()
    assert body["user_info"]["user_id"] == "u7"
    assert body["degraded"] == []

    body = (await client.get("/api/structured/dashboard/u7", params={"failing": ["payment", "orders"]})).json()
    assert body["degraded"] == ["orders", "payment"]
    assert body["payment"]["default_method"] == "unknown"

    resp = await client.get("/api/structured/dashboard/u7", params={"failing": "orders", "fallback": "false"})
    assert resp.status_code == 503

    assert (await client.get("/api/structured/dashboard/u7", params={"failing": "billing"})).status_code == 422

    users = {"user_ids": ["a", "b", "c"], "batch_size": 2}
    body = (await client.post("/api/structured/dashboards", json=users)).json()
    assert sorted(body["dashboards"]) == ["a", "b", "c"]

    demo = (await client.post("/api/structured/demo")).json()["results"]
    assert demo["first_success"].startswith("Processed: task-")
    assert demo["partial"]["failure_count"] == 1
    assert demo["majority"]["has_majority"] is True
    assert demo["statistics"]["sum"] == 5050
    assert demo["dashboard"]["degraded"] == ["payment"]


@pytest.mark.asyncio
async def test_health(client):
    assert (await client.get("/health")).json()["status"] == "ok"
