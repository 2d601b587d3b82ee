from decimal import Decimal

from courier_dispatch.models.order import OrderStatus


def test_registration_starts_pending_review(client, auth_headers):
    response = client.post(
        "/api/v1/couriers",
        json={"user_id": "courier-a", "working_areas": [" خلدا ", "خلدا", "عبدون"]},
        headers=auth_headers["courier_a"],
    )

    assert response.status_code == 201
    body = response.json()
    assert body["account_status"] == "PENDING_REVIEW"
    assert body["is_available"] is False
    assert body["working_areas"] == ["خلدا", "عبدون"]


def test_duplicate_registration_conflicts(client, auth_headers):
    payload = {"user_id": "courier-a", "working_areas": ["خلدا"]}
    client.post("/api/v1/couriers", json=payload, headers=auth_headers["courier_a"])

    response = client.post("/api/v1/couriers", json=payload, headers=auth_headers["courier_a"])

    assert response.status_code == 409


def test_unapproved_courier_cannot_go_online(client, auth_headers):
    registered = client.post(
        "/api/v1/couriers",
        json={"user_id": "courier-a", "working_areas": ["خلدا"]},
        headers=auth_headers["courier_a"],
    ).json()

    response = client.post(
        f"/api/v1/couriers/{registered['id']}/availability",
        json={"is_available": True},
        headers=auth_headers["courier_a"],
    )

    assert response.status_code == 409


def test_admin_block_takes_courier_offline(client, auth_headers, onboard_courier):
    courier = onboard_courier("courier_a", ["خلدا"])

    blocked = client.post(
        f"/api/v1/couriers/{courier['id']}/block",
        json={"reason": "شكوى متكررة"},
        headers=auth_headers["admin"],
    )
    online = client.post(
        f"/api/v1/couriers/{courier['id']}/availability",
        json={"is_available": True},
        headers=auth_headers["courier_a"],
    )
    unblocked = client.post(
        f"/api/v1/couriers/{courier['id']}/unblock", headers=auth_headers["admin"]
    )

    assert blocked.json()["is_blocked"] is True
    assert blocked.json()["is_available"] is False
    assert online.status_code == 409
    assert unblocked.json()["is_blocked"] is False


def test_working_areas_can_be_replaced(client, auth_headers, onboard_courier):
    courier = onboard_courier("courier_a", ["خلدا"])

    response = client.post(
        f"/api/v1/couriers/{courier['id']}/working-areas",
        json={"working_areas": ["الجبيهة", "صويلح"]},
        headers=auth_headers["courier_a"],
    )

    assert response.json()["working_areas"] == ["الجبيهة", "صويلح"]


def test_settlement_endpoints(client, auth_headers, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], pending="48.50")
    order = make_order(status=OrderStatus.COMPLETED, courier=courier, commission="1.5")

    posting = client.post(
        f"/api/v1/settlements/orders/{order.id}/commission", headers=auth_headers["admin"]
    )
    assert posting.status_code == 200
    assert posting.json()["blocked"] is True
    assert Decimal(posting.json()["total_pending"]) == Decimal("50.00")

    repost = client.post(
        f"/api/v1/settlements/orders/{order.id}/commission", headers=auth_headers["admin"]
    )
    assert repost.status_code == 409

    overpay = client.post(
        f"/api/v1/settlements/couriers/{courier.id}/paid",
        json={"amount": "60"},
        headers=auth_headers["admin"],
    )
    assert overpay.status_code == 422

    clock.advance(hours=1)
    paid = client.post(
        f"/api/v1/settlements/couriers/{courier.id}/paid",
        json={"amount": "20"},
        headers=auth_headers["admin"],
    )
    assert paid.status_code == 200, paid.text
    assert Decimal(paid.json()["remaining_debt"]) == Decimal("30.00")
    assert paid.json()["is_blocked"] is False
    assert paid.json()["settlement"]["paid_by"] == "admin-1"
    assert paid.json()["settlement"]["orders_count"] == 1

    daily = client.get(
        "/api/v1/settlements/daily",
        params={"day": clock.now().date().isoformat()},
        headers=auth_headers["admin"],
    )
    assert daily.status_code == 200
    assert daily.json()["couriers_count"] == 1
    assert Decimal(daily.json()["paid_total"]) == Decimal("20.00")

    history = client.get(
        f"/api/v1/settlements/couriers/{courier.id}", headers=auth_headers["admin"]
    )
    assert [Decimal(item["amount"]) for item in history.json()] == [Decimal("20.00")]


def test_debt_sweep_endpoint_warns_then_blocks(client, auth_headers, make_courier, clock, notifier):
    courier = make_courier(["خلدا"], pending="15.00")

    first = client.post("/api/v1/debt/sweep", headers=auth_headers["admin"])
    assert first.json()["warned_count"] == 1
    assert first.json()["warned"][0]["hours_until_block"] == 24

    clock.advance(hours=24)
    second = client.post("/api/v1/debt/sweep", headers=auth_headers["admin"])
    assert second.json()["blocked_count"] == 1
    assert second.json()["blocked"][0]["id"] == str(courier.id)

    status = client.get(f"/api/v1/couriers/{courier.id}/debt").json()
    assert status["is_blocked"] is True
    assert status["can_receive_orders"] is False
    assert notifier.sent[0]["data"]["type"] == "debt_warning"
