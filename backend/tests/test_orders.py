"""
Order placement and lookup tests.

Verifies:
- A new order has exactly one "Order Placed" tracking entry
- total_amount is the sum of catalog price x quantity
- Stock is decremented atomically and never goes negative
- Guests need a session id; owners and admins can read an order
- Public tracking requires the shipping email
"""

import pytest
from conftest import SHIPPING_ADDRESS, order_payload

from storefront.errors import FailedPreconditionError
from storefront.models import Notification, Order, Product, StockMovement
from storefront.services import inventory_service


class TestPlaceOrder:

    def test_single_placed_entry_and_total(self, client, db_session, make_product, customer_headers):
        phone = make_product("Phone", price_cents=1999900, stock=10)
        case = make_product("Case", price_cents=49950, stock=10)

        resp = client.post(
            "/api/orders",
            json=order_payload((phone.id, 1), (case.id, 2)),
            headers=customer_headers,
        )
        assert resp.status_code == 201
        order = resp.json["order"]

        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["total_cents"] == 1999900 + 2 * 49950
        assert order["total_amount"] == "20998.00"
        assert len(order["tracking_history"]) == 1
        entry = order["tracking_history"][0]
        assert entry["status"] == "Order Placed"
        assert entry["description"] == "Your order has been placed successfully"
        assert entry["location"] == "Online"
        assert order["order_number"].startswith("ORD-")
        assert order["tracking_number"].startswith("FK")
        assert order["estimated_delivery"] is not None

    def test_stock_decremented(self, client, db_session, make_product, customer_headers):
        product = make_product("Laptop", stock=10)

        resp = client.post("/api/orders", json=order_payload((product.id, 3)), headers=customer_headers)
        assert resp.status_code == 201

        db_session.refresh(product)
        assert product.stock == 7
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).one()
        assert movement.quantity_delta == -3
        assert movement.resulting_stock == 7
        assert movement.reason == "order"
        assert movement.reference == resp.json["order"]["order_number"]

    def test_catalog_price_wins_over_client_price(self, client, db_session, make_product, customer_headers):
        product = make_product("Watch", price_cents=25000)
        payload = order_payload((product.id, 2))
        payload["items"][0]["price"] = 1

        resp = client.post("/api/orders", json=payload, headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json["order"]["total_cents"] == 50000
        assert resp.json["order"]["items"][0]["unit_price_cents"] == 25000

    def test_repeated_product_lines_are_merged(self, client, db_session, make_product, customer_headers):
        product = make_product("Pen", stock=5)

        resp = client.post(
            "/api/orders",
            json=order_payload((product.id, 2), (product.id, 3)),
            headers=customer_headers,
        )
        assert resp.status_code == 201
        assert len(resp.json["order"]["items"]) == 1
        assert resp.json["order"]["items"][0]["quantity"] == 5
        db_session.refresh(product)
        assert product.stock == 0

    def test_insufficient_stock_changes_nothing(self, client, db_session, make_product, customer_headers):
        plenty = make_product("Plenty", stock=10)
        scarce = make_product("Scarce", stock=1)

        resp = client.post(
            "/api/orders",
            json=order_payload((plenty.id, 2), (scarce.id, 2)),
            headers=customer_headers,
        )
        assert resp.status_code == 409
        error = resp.json["error"]
        assert error["kind"] == "failed-precondition"
        assert "items.1.quantity" in error["fields"]

        db_session.refresh(plenty)
        db_session.refresh(scarce)
        assert plenty.stock == 10
        assert scarce.stock == 1
        assert db_session.query(Order).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_and_inactive_products_rejected(self, client, db_session, make_product, customer_headers):
        hidden = make_product("Hidden", is_active=False)

        resp = client.post(
            "/api/orders",
            json=order_payload((hidden.id, 1), (999999, 1)),
            headers=customer_headers,
        )
        assert resp.status_code == 400
        fields = resp.json["error"]["fields"]
        assert "items.0.product_id" in fields
        assert "items.1.product_id" in fields

    def test_validation_collects_field_errors(self, client, db_session, customer_headers):
        resp = client.post(
            "/api/orders",
            json={
                "items": [{"product_id": 1, "quantity": 0}],
                "shipping_address": {**SHIPPING_ADDRESS, "email": "not-an-email", "zip_code": "12"},
                "payment_method": "cash",
            },
            headers=customer_headers,
        )
        assert resp.status_code == 400
        fields = resp.json["error"]["fields"]
        assert set(fields) >= {
            "items.0.quantity",
            "shipping_address.email",
            "shipping_address.zip_code",
            "payment_method",
        }

    def test_guest_requires_session_id(self, client, db_session, make_product):
        product = make_product()
        resp = client.post("/api/orders", json=order_payload((product.id, 1)))
        assert resp.status_code == 400
        assert resp.json["error"]["fields"] == {"session_id": "is required for guest checkout"}

    def test_guest_order_with_session_header(self, client, db_session, make_product):
        product = make_product()
        resp = client.post(
            "/api/orders",
            json=order_payload((product.id, 1)),
            headers={"X-Session-Id": "guest-123"},
        )
        assert resp.status_code == 201
        order = db_session.get(Order, resp.json["order"]["id"])
        assert order.user_id is None
        assert order.session_id == "guest-123"

    def test_signed_in_buyer_gets_notification_and_cart_cleared(
        self, client, db_session, make_product, customer, customer_headers
    ):
        product = make_product()
        client.post("/api/cart/items", json={"product_id": product.id, "quantity": 1}, headers=customer_headers)

        resp = client.post("/api/orders", json=order_payload((product.id, 1)), headers=customer_headers)
        assert resp.status_code == 201

        notifications = db_session.query(Notification).filter_by(user_id=customer.id).all()
        assert len(notifications) == 1
        assert notifications[0].type == "order"
        assert notifications[0].order_id == resp.json["order"]["id"]

        cart = client.get("/api/cart", headers=customer_headers).json["cart"]
        assert cart["items"] == []


class TestOrderAccess:

    def _place(self, client, product, headers):
        resp = client.post("/api/orders", json=order_payload((product.id, 1)), headers=headers)
        assert resp.status_code == 201
        return resp.json["order"]

    def test_owner_and_admin_can_read(self, client, db_session, make_product, customer_headers, admin_headers):
        order = self._place(client, make_product(), customer_headers)

        assert client.get(f"/api/orders/{order['id']}", headers=customer_headers).status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200

    def test_other_user_denied(self, client, db_session, make_product, customer_headers, other_headers):
        order = self._place(client, make_product(), customer_headers)

        resp = client.get(f"/api/orders/{order['id']}", headers=other_headers)
        assert resp.status_code == 403
        assert resp.json["error"]["kind"] == "permission-denied"

    def test_guest_session_scoping(self, client, db_session, make_product):
        order = self._place(client, make_product(), {"X-Session-Id": "guest-a"})

        assert client.get(f"/api/orders/{order['id']}", headers={"X-Session-Id": "guest-a"}).status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers={"X-Session-Id": "guest-b"}).status_code == 403

    def test_missing_order_is_404(self, client, db_session, customer_headers):
        resp = client.get("/api/orders/424242", headers=customer_headers)
        assert resp.status_code == 404
        assert resp.json["error"]["kind"] == "not-found"

    def test_my_orders(self, client, db_session, make_product, customer_headers, other_headers):
        product = make_product(stock=20)
        self._place(client, product, customer_headers)
        self._place(client, product, customer_headers)
        self._place(client, product, other_headers)

        resp = client.get("/api/orders/mine", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2

    def test_admin_listing_paginates(self, client, db_session, make_product, customer_headers, admin_headers):
        product = make_product(stock=20)
        for _ in range(3):
            self._place(client, product, customer_headers)

        resp = client.get("/api/orders?limit=2&page=1", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.json["orders"]) == 2
        assert resp.json["pagination"]["total"] == 3
        assert resp.json["pagination"]["has_next"] is True

    def test_listing_requires_admin(self, client, db_session, customer_headers):
        assert client.get("/api/orders", headers=customer_headers).status_code == 403
        assert client.get("/api/orders").status_code == 401


class TestTracking:

    def test_track_with_matching_email(self, client, db_session, make_product, customer_headers):
        product = make_product()
        order = client.post(
            "/api/orders", json=order_payload((product.id, 1)), headers=customer_headers
        ).json["order"]

        resp = client.get(f"/api/orders/track/{order['tracking_number']}?email=ASHA@example.com")
        assert resp.status_code == 200
        assert resp.json["order"]["order_number"] == order["order_number"]
        assert len(resp.json["order"]["tracking_history"]) == 1

    def test_track_email_mismatch_looks_missing(self, client, db_session, make_product, customer_headers):
        product = make_product()
        order = client.post(
            "/api/orders", json=order_payload((product.id, 1)), headers=customer_headers
        ).json["order"]

        resp = client.get(f"/api/orders/track/{order['tracking_number']}?email=someone@else.com")
        assert resp.status_code == 404
        assert client.get(f"/api/orders/track/{order['tracking_number']}").status_code == 404


def test_stock_never_negative(app, db_session, make_product):
    product = make_product(stock=2)

    with pytest.raises(FailedPreconditionError) as exc_info:
        inventory_service.apply_stock_delta(product.id, -3, reason="order")
    assert exc_info.value.fields["available"] == 2
    db_session.rollback()
    assert db_session.get(Product, product.id).stock == 2
