import json
from datetime import datetime, timedelta, timezone

from brimasouk.promotions import commands as promo_commands

from conftest import ADMIN, auth

SHIPPING = {
    "full_name": "Amira Ben Salah",
    "address": "12 Avenue Habib Bourguiba",
    "city": "Tunis",
    "postal_code": "1000",
}


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_missing_or_bad_token_is_401(client):
    assert (await client.get("/api/orders")).status_code == 401
    resp = await client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


async def test_role_gates_answer_403(client, customer):
    resp = await client.get("/api/admin/dashboard", headers=auth(customer))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied: insufficient role"

    resp = await client.post(
        "/api/products",
        json={"name": "Vase", "description": "Clay", "category": "Home", "price": 10},
        headers=auth(customer),
    )
    assert resp.status_code == 403


async def test_product_lifecycle(client, artisan):
    resp = await client.post(
        "/api/products",
        json={"name": "Clay vase", "description": "Hand made", "category": "Home", "price": 50, "stock": 4},
        headers=auth(artisan),
    )
    assert resp.status_code == 201
    product_id = resp.json()["product"]["id"]

    assert (await client.get(f"/api/products/{product_id}")).status_code == 404
    assert (await client.get("/api/products")).json()["products"] == []

    resp = await client.put(
        f"/api/admin/products/{product_id}/approve",
        json={"markup_percentage": 20},
        headers=auth(ADMIN),
    )
    assert resp.status_code == 200
    assert resp.json()["product"]["price"] == 60.0

    listing = (await client.get("/api/products", params={"category": "Home"})).json()
    assert [p["id"] for p in listing["products"]] == [product_id]

    resp = await client.put(f"/api/admin/products/{product_id}/approve", headers=auth(ADMIN))
    assert resp.status_code == 400
    assert "message" in resp.json()


async def test_unknown_product_is_404_with_message(client):
    resp = await client.get("/api/products/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Product not found"


async def test_place_and_cancel_order(client, customer, make_product, redis):
    product = await make_product(price=40, markup=0, stock=5)
    pubsub = redis.pubsub()
    await pubsub.subscribe("notifications")
    await pubsub.get_message(timeout=0.1)

    resp = await client.post(
        "/api/orders",
        json={"items": [{"product_id": product.id, "quantity": 2}], "shipping_address": SHIPPING},
        headers=auth(customer),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["order"]["total_amount"] == 87.99
    assert body["order"]["shipping_address"]["country"] == "Tunisia"
    assert body["payment"]["session_id"].startswith("mock-session-")

    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
    assert json.loads(message["data"])["data"]["type"] == "order_created"
    await pubsub.aclose()

    order_id = body["order"]["id"]
    resp = await client.get(
        f"/api/orders/{order_id}/payment",
        params={"sessionId": body["payment"]["session_id"]},
        headers=auth(customer),
    )
    assert resp.json()["verified"] is True

    resp = await client.get(f"/api/orders/{order_id}/payment", headers=auth(customer))
    assert resp.json()["verified"] is True
    assert resp.json()["status"] == "COMPLETED"

    resp = await client.put(f"/api/orders/{order_id}/cancel", headers=auth(customer))
    assert resp.status_code == 200
    assert resp.json()["order"]["order_status"] == "cancelled"


async def test_order_with_insufficient_stock(client, customer, make_product):
    product = await make_product(stock=1)
    resp = await client.post(
        "/api/orders",
        json={"items": [{"product_id": product.id, "quantity": 3}], "shipping_address": SHIPPING},
        headers=auth(customer),
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Not enough stock for Clay vase"
    assert resp.json()["available"] == 1


async def test_promo_validate_is_public(client, session):
    await promo_commands.create_promo_code(
        session, ADMIN, "SUMMER10", "percentage", 10, min_order_value=50
    )

    resp = await client.post("/api/promocodes/validate", json={"code": "summer10", "order_value": 80})
    assert resp.status_code == 200
    assert resp.json()["promo_code"]["discount_amount"] == 8.0

    resp = await client.post("/api/promocodes/validate", json={"code": "SUMMER10", "order_value": 20})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Minimum order value of 50 required"


async def test_book_event(client, artisan, customer):
    start = datetime.now(timezone.utc) + timedelta(days=5)
    resp = await client.post(
        "/api/events",
        json={
            "title": "Weaving class",
            "description": "Learn the margoum loom",
            "location": {"city": "Kairouan", "region": "Centre"},
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(hours=2)).isoformat(),
            "duration": 120,
            "max_participants": 3,
        },
        headers=auth(artisan),
    )
    assert resp.status_code == 201
    event_id = resp.json()["event"]["id"]

    resp = await client.put(f"/api/admin/events/{event_id}/approve", headers=auth(ADMIN))
    assert resp.status_code == 200

    booking = {"full_name": "Amira", "email": "amira@example.tn", "number_of_participants": 2}
    resp = await client.post(f"/api/events/{event_id}/book", json=booking, headers=auth(customer))
    assert resp.status_code == 201
    assert resp.json()["reservation"]["status"] == "confirmed"

    resp = await client.post(f"/api/events/{event_id}/book", json=booking, headers=auth(customer))
    assert resp.status_code == 400

    mine = (await client.get("/api/events/reservations", headers=auth(customer))).json()
    assert len(mine) == 1


async def test_admin_dashboard_and_history(client, make_product):
    product = await make_product()

    stats = (await client.get("/api/admin/dashboard", headers=auth(ADMIN))).json()
    assert stats["products"]["approved"] == 1
    assert stats["artisans"]["approved"] == 1

    history = (await client.get(f"/api/admin/history/{product.id}", headers=auth(ADMIN))).json()
    assert [e["event_type"] for e in history] == ["ProductCreated", "ProductApproved"]

    recent = await client.get(
        "/api/admin/history", params={"aggregateType": "Product"}, headers=auth(ADMIN)
    )
    assert {e["aggregate_id"] for e in recent.json()} == {product.id}


async def test_verify_unknown_order_is_404(client, customer):
    resp = await client.get("/api/orders/does-not-exist/payment", headers=auth(customer))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Order not found"


async def test_public_product_views_hide_pricing_details(client, artisan, make_product):
    product = await make_product(price=50, markup=20)

    listed = (await client.get("/api/products")).json()["products"][0]
    detail = (await client.get(f"/api/products/{product.id}")).json()
    for body in (listed, detail):
        assert body["price"] == 60.0
        assert "original_price" not in body
        assert "markup_percentage" not in body

    owned = (await client.get(f"/api/products/{product.id}", headers=auth(artisan))).json()
    assert owned["original_price"] == 50.0
    admin_view = (await client.get("/api/products", headers=auth(ADMIN))).json()["products"][0]
    assert admin_view["markup_percentage"] == 20.0


async def test_artisan_lists_own_products(client, artisan, customer, make_product):
    pending = await make_product(approve=False)

    resp = await client.get("/api/products/mine", headers=auth(artisan))
    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()["products"]] == [pending.id]
    assert resp.json()["products"][0]["is_approved"] is False

    assert (await client.get("/api/products/mine", headers=auth(customer))).status_code == 403


async def test_apply_artisan_and_directory(client, customer, artisan):
    resp = await client.post(
        "/api/users/apply-artisan",
        json={"region": "Sfax", "phone_number": "+21620000000", "artisan_description": "Copper"},
        headers=auth(customer),
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "artisan"
    assert resp.json()["user"]["is_approved"] is False

    resp = await client.post(
        "/api/users/apply-artisan", json={"region": "Sfax", "phone_number": "+216"}, headers=auth(artisan)
    )
    assert resp.status_code == 400

    directory = (await client.get("/api/users/artisans")).json()
    assert [a["id"] for a in directory["artisans"]] == [artisan.id]
    assert (await client.get(f"/api/users/artisans/{artisan.id}")).json()["full_name"] == artisan.name
    assert (await client.get(f"/api/users/artisans/{customer.id}")).status_code == 404
