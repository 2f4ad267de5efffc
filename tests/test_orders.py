import pytest
from helpers import coupon_usage, count_order_items, count_orders, mark_paid, stock_of, url_prefix, variant_stock_of


def _order_payload(seed, **extra):
    payload = {
        "items": [
            {"productId": seed["cream_id"], "quantity": 2},
            {"productId": seed["lipstick_id"], "variantId": seed["red_id"], "quantity": 1},
        ],
        "customerPhone": "09121234567",
    }
    payload.update(extra)
    return payload


async def _place(ac_client, seed, headers, **extra):
    r = await ac_client.post(f"{url_prefix}/orders", json=_order_payload(seed, **extra), headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_place_order_decrements_stock_and_counts_coupon(seed, ac_client, auth_headers, notifier):
    headers = auth_headers(seed["customer_id"])
    order = await _place(ac_client, seed, headers, couponCode="save10")

    assert order["orderNumber"].startswith("ORD-")
    assert order["status"] == "PENDING"
    assert order["paymentStatus"] == "PENDING"
    assert order["subtotal"] == 3_100_000
    assert order["discountAmount"] == 310_000
    assert order["totalAmount"] == 2_790_000
    assert order["couponCode"] == "SAVE10"
    assert order["expiresAt"] is not None
    assert {it["sku"] for it in order["items"]} == {"SKN-001", "MKP-001-RED"}
    red = next(it for it in order["items"] if it["sku"] == "MKP-001-RED")
    assert red["unitPrice"] == 600_000
    assert red["name"] == "Lipstick - Red"

    assert await stock_of(seed["cream_id"]) == 8
    assert await variant_stock_of(seed["red_id"]) == 2
    assert await stock_of(seed["lipstick_id"]) == 5
    assert await coupon_usage(seed["coupon_id"]) == 1
    # online orders are announced once paid
    assert notifier.published == []


@pytest.mark.asyncio
async def test_cash_on_delivery_order_is_confirmed_without_expiry(seed, ac_client, auth_headers, notifier):
    order = await _place(ac_client, seed, auth_headers(seed["customer_id"]), paymentMethod="CASH_ON_DELIVERY")

    assert order["status"] == "CONFIRMED"
    assert order["paymentStatus"] == "PENDING"
    assert order["expiresAt"] is None
    assert notifier.events() == ["ORDER_CONFIRMED"]
    assert notifier.published[0]["receptor"] == "09121234567"


@pytest.mark.asyncio
async def test_duplicate_lines_are_merged(seed, ac_client, auth_headers):
    payload = {"items": [{"productId": seed["cream_id"], "quantity": 1},
                         {"productId": seed["cream_id"], "quantity": 2}]}
    r = await ac_client.post(f"{url_prefix}/orders", json=payload, headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 201
    items = r.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 3
    assert await stock_of(seed["cream_id"]) == 7


@pytest.mark.asyncio
async def test_insufficient_stock_leaves_nothing_behind(seed, ac_client, auth_headers):
    payload = {"items": [{"productId": seed["cream_id"], "quantity": 2},
                         {"productId": seed["lipstick_id"], "variantId": seed["red_id"], "quantity": 4}],
               "couponCode": "SAVE10"}
    r = await ac_client.post(f"{url_prefix}/orders", json=payload, headers=auth_headers(seed["customer_id"]))

    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INSUFFICIENT_STOCK"
    assert await stock_of(seed["cream_id"]) == 10
    assert await variant_stock_of(seed["red_id"]) == 3
    assert await coupon_usage(seed["coupon_id"]) == 0
    assert await count_orders() == 0
    assert await count_order_items() == 0


@pytest.mark.asyncio
async def test_rejected_coupon_fails_the_order(seed, ac_client, auth_headers):
    r = await ac_client.post(f"{url_prefix}/orders", json=_order_payload(seed, couponCode="NOPE"),
                             headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 404
    assert await stock_of(seed["cream_id"]) == 10
    assert await count_orders() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("items", [
    [{"productId": 987654, "quantity": 1}],
    "variant_of_other_product",
])
async def test_invalid_items_are_rejected(seed, ac_client, auth_headers, items):
    if items == "variant_of_other_product":
        items = [{"productId": seed["cream_id"], "variantId": seed["red_id"], "quantity": 1}]
    r = await ac_client.post(f"{url_prefix}/orders", json={"items": items},
                             headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_order_body_is_validated(seed, ac_client, auth_headers):
    headers = auth_headers(seed["customer_id"])
    r = await ac_client.post(f"{url_prefix}/orders", json={"items": []}, headers=headers)
    assert r.status_code == 422
    r = await ac_client.post(f"{url_prefix}/orders", json=_order_payload(seed, totalAmount=1), headers=headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_order_requires_a_token(seed, ac_client):
    r = await ac_client.post(f"{url_prefix}/orders", json=_order_payload(seed))
    assert r.status_code in (401, 403)
    r = await ac_client.post(f"{url_prefix}/orders", json=_order_payload(seed),
                             headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_read_order_owner_admin_and_stranger(seed, ac_client, auth_headers):
    order = await _place(ac_client, seed, auth_headers(seed["customer_id"]))
    path = f"{url_prefix}/orders/{order['orderNumber']}"

    r = await ac_client.get(path, headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 200
    assert len(r.json()["data"]["items"]) == 2

    r = await ac_client.get(path, headers=auth_headers(seed["other_id"]))
    assert r.status_code == 403

    r = await ac_client.get(path, headers=auth_headers(seed["admin_id"], ["ADMIN"]))
    assert r.status_code == 200

    r = await ac_client.get(f"{url_prefix}/orders/ORD-2026-DEADBEEF", headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_owner_cancel_restores_stock_and_coupon_once(seed, ac_client, auth_headers, notifier):
    headers = auth_headers(seed["customer_id"])
    order = await _place(ac_client, seed, headers, couponCode="SAVE10")

    r = await ac_client.post(f"{url_prefix}/orders/{order['id']}/cancel", json={"reason": "changed my mind"},
                             headers=headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["status"] == "CANCELLED"
    assert data["paymentStatus"] == "FAILED"
    assert data["itemsRestored"] == 2
    assert data["couponRestored"] is True
    assert await stock_of(seed["cream_id"]) == 10
    assert await variant_stock_of(seed["red_id"]) == 3
    assert await coupon_usage(seed["coupon_id"]) == 0
    assert notifier.events() == ["ORDER_CANCELLED"]

    r = await ac_client.post(f"{url_prefix}/orders/{order['id']}/cancel", headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_TRANSITION"
    assert await stock_of(seed["cream_id"]) == 10
    assert await coupon_usage(seed["coupon_id"]) == 0


@pytest.mark.asyncio
async def test_cancel_sms_uses_account_phone_when_checkout_phone_missing(seed, ac_client, auth_headers, notifier):
    headers = auth_headers(seed["customer_id"])
    order = await _place(ac_client, seed, headers, customerPhone=None)

    r = await ac_client.post(f"{url_prefix}/orders/{order['id']}/cancel", headers=headers)
    assert r.status_code == 200, r.text

    assert notifier.events() == ["ORDER_CANCELLED"]
    assert notifier.published[0]["receptor"] == "09121234567"
    assert notifier.published[0]["context"]["customer"] == "Sara Ahmadi"


@pytest.mark.asyncio
async def test_cancel_by_stranger_is_forbidden(seed, ac_client, auth_headers):
    order = await _place(ac_client, seed, auth_headers(seed["customer_id"]))

    r = await ac_client.post(f"{url_prefix}/orders/{order['id']}/cancel", headers=auth_headers(seed["other_id"]))
    assert r.status_code == 403
    assert await stock_of(seed["cream_id"]) == 8


@pytest.mark.asyncio
async def test_paid_order_cannot_be_cancelled(seed, ac_client, auth_headers):
    headers = auth_headers(seed["customer_id"])
    order = await _place(ac_client, seed, headers)
    await mark_paid(order["id"])

    r = await ac_client.post(f"{url_prefix}/orders/{order['id']}/cancel", headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ORDER_PAID"
    assert await stock_of(seed["cream_id"]) == 8


@pytest.mark.asyncio
async def test_admin_fulfilment_flow_for_cash_order(seed, ac_client, auth_headers, notifier):
    order = await _place(ac_client, seed, auth_headers(seed["customer_id"]), paymentMethod="CASH_ON_DELIVERY")
    admin_headers = auth_headers(seed["admin_id"], ["ADMIN"])
    path = f"{url_prefix}/admin/orders/{order['id']}/status"

    r = await ac_client.patch(path, json={"status": "PROCESSING"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "PROCESSING"

    r = await ac_client.patch(path, json={"status": "SHIPPED", "trackingNumber": "TRK-1234"}, headers=admin_headers)
    data = r.json()["data"]
    assert data["status"] == "SHIPPED"
    assert data["trackingNumber"] == "TRK-1234"
    assert data["shippedAt"] is not None

    r = await ac_client.patch(path, json={"status": "DELIVERED"}, headers=admin_headers)
    data = r.json()["data"]
    assert data["status"] == "DELIVERED"
    assert data["deliveredAt"] is not None
    # cash collected at the door
    assert data["paymentStatus"] == "PAID"

    assert notifier.events() == ["ORDER_CONFIRMED", "ORDER_SHIPPED", "ORDER_DELIVERED"]
    assert notifier.published[1]["context"]["tracking_number"] == "TRK-1234"


@pytest.mark.asyncio
async def test_admin_status_guards(seed, ac_client, auth_headers):
    order = await _place(ac_client, seed, auth_headers(seed["customer_id"]), paymentMethod="CASH_ON_DELIVERY")
    admin_headers = auth_headers(seed["admin_id"], ["ADMIN"])
    path = f"{url_prefix}/admin/orders/{order['id']}/status"

    r = await ac_client.patch(path, json={"status": "DELIVERED"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_TRANSITION"

    r = await ac_client.patch(path, json={"status": "REFUNDED"}, headers=admin_headers)
    assert r.status_code == 422

    r = await ac_client.patch(path, json={"status": "PROCESSING"}, headers=auth_headers(seed["customer_id"]))
    assert r.status_code == 403

    r = await ac_client.patch(path, json={"status": "BOGUS"}, headers=admin_headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_admin_confirm_clears_expiry_and_admin_cancel_restores(seed, ac_client, auth_headers, notifier):
    headers = auth_headers(seed["customer_id"])
    admin_headers = auth_headers(seed["admin_id"], ["ADMIN"])
    first = await _place(ac_client, seed, headers)
    second = await _place(ac_client, seed, headers)
    assert await stock_of(seed["cream_id"]) == 6

    r = await ac_client.patch(f"{url_prefix}/admin/orders/{first['id']}/status", json={"status": "CONFIRMED"},
                              headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["expiresAt"] is None

    r = await ac_client.patch(f"{url_prefix}/admin/orders/{second['id']}/status", json={"status": "CANCELLED"},
                              headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "CANCELLED"
    assert await stock_of(seed["cream_id"]) == 8
    assert notifier.events() == ["ORDER_CONFIRMED", "ORDER_CANCELLED"]
