import pytest

from epicerie.catalog import service as catalog
from epicerie.common.config import settings
from epicerie.common.errors import PersistenceError, ValidationError
from epicerie.orders import service as orders

from conftest import order_counts


def item(product_id=1, name="Coca-Cola", price=2.5, quantity=2):
    return {
        "product_id": product_id,
        "product_name": name,
        "product_price": price,
        "quantity": quantity,
        "subtotal": price * quantity,
    }


def order_payload(items=None, **overrides):
    items = [item()] if items is None else items
    data = {
        "customer_name": "Jeanne Martin",
        "customer_email": "jeanne@example.com",
        "customer_phone": "0601020304",
        "delivery_address": "12 rue des Lilas, Lyon",
        "items": items,
        "notes": "Sonner deux fois",
    }
    data.update(overrides)
    if "total_amount" not in data:
        data["total_amount"] = sum(i.get("subtotal", 0) for i in items)
    return data


async def test_place_order_and_read_back_items(client, auth_headers):
    resp = await client.post("/api/orders", json=order_payload())
    assert resp.status_code == 200
    order_id = (await resp.get_json())["id"]

    resp = await client.get(f"/api/orders/{order_id}/items", headers=auth_headers)
    assert resp.status_code == 200
    items = await resp.get_json()
    assert len(items) == 1
    assert items[0]["order_id"] == order_id
    assert items[0]["product_id"] == 1
    assert items[0]["product_name"] == "Coca-Cola"
    assert items[0]["product_price"] == 2.5
    assert items[0]["quantity"] == 2
    assert items[0]["subtotal"] == 5.0


async def test_new_order_is_pending_with_header_fields(client, auth_headers):
    resp = await client.post("/api/orders", json=order_payload())
    order_id = (await resp.get_json())["id"]

    resp = await client.get("/api/orders", headers=auth_headers)
    (stored,) = await resp.get_json()
    assert stored["id"] == order_id
    assert stored["status"] == "pending"
    assert stored["total_amount"] == 5.0
    assert stored["notes"] == "Sonner deux fois"
    assert stored["customer_email"] == "jeanne@example.com"


async def test_items_keep_input_order(client, auth_headers):
    items = [item(product_id=i, name=f"P{i}", quantity=i) for i in (3, 1, 2)]
    order_id = await orders.place_order(order_payload(items))

    resp = await client.get(f"/api/orders/{order_id}/items", headers=auth_headers)
    assert [i["product_name"] for i in await resp.get_json()] == ["P3", "P1", "P2"]


async def test_item_snapshot_survives_product_changes(client, auth_headers):
    product_id = await catalog.create(1, {"name": "Café moulu", "price": 4.2, "stock_quantity": 10})
    order_id = await orders.place_order(order_payload([item(product_id, "Café moulu", 4.2, 1)]))

    await catalog.update(product_id, {"name": "Café bio", "price": 6.0})
    await catalog.delete(product_id)

    (line,) = await orders.get_items(order_id)
    assert line["product_name"] == "Café moulu"
    assert line["product_price"] == 4.2


@pytest.mark.parametrize(
    "field", ["customer_name", "customer_email", "customer_phone", "delivery_address", "total_amount", "items"]
)
async def test_missing_required_field_is_400(client, field):
    data = order_payload()
    del data[field]
    resp = await client.post("/api/orders", json=data)
    assert resp.status_code == 400
    assert await order_counts() == (0, 0)


async def test_empty_items_is_400(client):
    resp = await client.post("/api/orders", json=order_payload(items=[], total_amount=0))
    assert resp.status_code == 400


async def test_notes_are_optional(client):
    data = order_payload()
    del data["notes"]
    resp = await client.post("/api/orders", json=data)
    assert resp.status_code == 200


async def test_item_missing_quantity_rolls_back(client, auth_headers):
    bad = item()
    del bad["quantity"]
    resp = await client.post("/api/orders", json=order_payload([bad], total_amount=5.0))
    assert resp.status_code == 500
    body = await resp.get_json()
    # raw database text stays server side
    assert body == {"error": "Failed to create order"}

    resp = await client.get("/api/orders", headers=auth_headers)
    assert await resp.get_json() == []


@pytest.mark.parametrize("failing", [0, 1, 2])
async def test_failure_at_any_item_leaves_nothing_behind(failing):
    items = [item(product_id=i, name=f"P{i}") for i in range(3)]
    del items[failing]["quantity"]

    with pytest.raises(PersistenceError):
        await orders.place_order(order_payload(items))

    assert await order_counts() == (0, 0)


@pytest.mark.parametrize(
    "broken",
    [
        {"quantity": 0},
        {"quantity": -1},
        {"quantity": 2.7},
        {"quantity": "two"},
        {"product_id": None},
        {"product_name": None},
    ],
)
async def test_malformed_item_rolls_back(broken):
    items = [item(), dict(item(product_id=2), **broken)]
    with pytest.raises(PersistenceError):
        await orders.place_order(order_payload(items, total_amount=10.0))
    assert await order_counts() == (0, 0)


async def test_non_object_item_rolls_back():
    with pytest.raises(PersistenceError):
        await orders.place_order(order_payload([item(), "not-an-item"], total_amount=5.0))
    assert await order_counts() == (0, 0)


async def test_failed_order_does_not_affect_earlier_orders():
    first = await orders.place_order(order_payload())
    bad = item()
    del bad["subtotal"]
    with pytest.raises(PersistenceError):
        await orders.place_order(order_payload([item(), bad], total_amount=10.0))

    assert [o["id"] for o in await orders.list_all()] == [first]
    assert await order_counts() == (1, 1)


async def test_orders_listed_newest_first(client, auth_headers):
    ids = [await orders.place_order(order_payload()) for _ in range(3)]
    resp = await client.get("/api/orders", headers=auth_headers)
    assert [o["id"] for o in await resp.get_json()] == list(reversed(ids))


async def test_order_reads_require_auth(client):
    order_id = await orders.place_order(order_payload())
    assert (await client.get("/api/orders")).status_code == 401
    assert (await client.get(f"/api/orders/{order_id}/items")).status_code == 401


@pytest.mark.parametrize("status", ["confirmed", "completed", "cancelled", "pending"])
async def test_update_status(client, auth_headers, status):
    order_id = await orders.place_order(order_payload())
    resp = await client.put(f"/api/orders/{order_id}/status", json={"status": status}, headers=auth_headers)
    assert resp.status_code == 200
    assert await resp.get_json() == {"success": True}
    assert (await orders.list_all())[0]["status"] == status


async def test_any_status_may_follow_any_status():
    order_id = await orders.place_order(order_payload())
    for status in ("completed", "pending", "cancelled", "confirmed"):
        assert await orders.update_status(order_id, status) is True
    assert (await orders.list_all())[0]["status"] == "confirmed"


async def test_unknown_status_is_400_and_unchanged(client, auth_headers):
    order_id = await orders.place_order(order_payload())
    resp = await client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=auth_headers)
    assert resp.status_code == 400
    assert await resp.get_json() == {"error": "Invalid status"}
    assert (await orders.list_all())[0]["status"] == "pending"


async def test_update_status_requires_auth(client):
    order_id = await orders.place_order(order_payload())
    resp = await client.put(f"/api/orders/{order_id}/status", json={"status": "confirmed"})
    assert resp.status_code == 401
    assert (await orders.list_all())[0]["status"] == "pending"


async def test_update_status_unknown_order_has_no_effect(client, auth_headers):
    resp = await client.put("/api/orders/404/status", json={"status": "confirmed"}, headers=auth_headers)
    assert resp.status_code == 200
    assert await orders.update_status(404, "confirmed") is False


async def test_parse_status_rejects_non_strings():
    with pytest.raises(ValidationError):
        orders.parse_status(None)


async def test_stock_untouched_by_default():
    product_id = await catalog.create(1, {"name": "Bonbons", "price": 3.0, "stock_quantity": 5})
    await orders.place_order(order_payload([item(product_id, "Bonbons", 3.0, 2)]))
    assert (await catalog.get(product_id))["stock_quantity"] == 5


async def test_stock_decrement_when_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ORDER_DECREMENT_STOCK", True)
    product_id = await catalog.create(1, {"name": "Bonbons", "price": 3.0, "stock_quantity": 5})
    await orders.place_order(order_payload([item(product_id, "Bonbons", 3.0, 2)]))
    assert (await catalog.get(product_id))["stock_quantity"] == 3


async def test_overselling_rolls_back_when_decrement_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ORDER_DECREMENT_STOCK", True)
    product_id = await catalog.create(1, {"name": "Bonbons", "price": 3.0, "stock_quantity": 5})
    other_id = await catalog.create(1, {"name": "Chips", "price": 2.0, "stock_quantity": 5})
    items = [item(other_id, "Chips", 2.0, 1), item(product_id, "Bonbons", 3.0, 6)]

    with pytest.raises(PersistenceError):
        await orders.place_order(order_payload(items))

    assert await order_counts() == (0, 0)
    assert (await catalog.get(other_id))["stock_quantity"] == 5
    assert (await catalog.get(product_id))["stock_quantity"] == 5
