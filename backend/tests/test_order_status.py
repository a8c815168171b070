"""
Order status transition tests.

Verifies:
- Each status change appends exactly one tracking entry
- The entry label is the status with its first letter capitalized
- Strict mode enforces the transition table; permissive mode does not
- Cancelling returns stock to the catalog
"""

import pytest
from conftest import order_payload

from storefront.errors import FailedPreconditionError, InvalidArgumentError
from storefront.models import Notification, StockMovement
from storefront.services import inventory_service, order_service
from storefront.services.access import Requester
from storefront.services.order_service import can_transition, status_label


@pytest.fixture
def placed_order(client, db_session, make_product, customer_headers):
    product = make_product("Blender", stock=10)
    resp = client.post("/api/orders", json=order_payload((product.id, 3)), headers=customer_headers)
    assert resp.status_code == 201
    return resp.json["order"], product


class TestStatusLabel:

    @pytest.mark.parametrize(
        "status,label",
        [
            ("confirmed", "Confirmed"),
            ("shipped", "Shipped"),
            ("delivered", "Delivered"),
            ("cancelled", "Cancelled"),
        ],
    )
    def test_first_letter_only(self, status, label):
        assert status_label(status) == label

    def test_rest_of_string_untouched(self):
        assert status_label("out_for_delivery") == "Out_for_delivery"


class TestTransitionTable:

    def test_allowed(self):
        assert can_transition("pending", "confirmed")
        assert can_transition("confirmed", "shipped")
        assert can_transition("shipped", "delivered")

    def test_rejected(self):
        assert not can_transition("delivered", "pending")
        assert not can_transition("cancelled", "confirmed")
        assert not can_transition("pending", "delivered")

    def test_permissive_allows_anything_known(self):
        assert can_transition("delivered", "pending", strict=False)
        assert not can_transition("delivered", "lost", strict=False)


class TestAdminStatusUpdate:

    def test_each_change_appends_one_entry(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order

        for expected_len, status in enumerate(["confirmed", "shipped", "delivered"], start=2):
            resp = client.patch(f"/api/orders/{order['id']}", json={"status": status}, headers=admin_headers)
            assert resp.status_code == 200
            history = resp.json["order"]["tracking_history"]
            assert len(history) == expected_len
            assert history[-1]["status"] == status_label(status)
            assert resp.json["order"]["status"] == status

    def test_default_and_custom_tracking_text(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order
        client.patch(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
        resp = client.patch(
            f"/api/orders/{order['id']}",
            json={"status": "shipped", "tracking_info": {"description": "Left the warehouse", "location": "Pune Hub"}},
            headers=admin_headers,
        )
        history = resp.json["order"]["tracking_history"]
        assert history[1]["description"] == "Your order is being processed"
        assert history[1]["location"] == "Processing Center"
        assert history[2]["status"] == "Shipped"
        assert history[2]["description"] == "Left the warehouse"
        assert history[2]["location"] == "Pune Hub"

    def test_illegal_transition_is_409_and_appends_nothing(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order

        resp = client.patch(f"/api/orders/{order['id']}", json={"status": "delivered"}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["error"]["kind"] == "failed-precondition"

        fresh = client.get(f"/api/orders/{order['id']}", headers=admin_headers).json["order"]
        assert fresh["status"] == "pending"
        assert len(fresh["tracking_history"]) == 1

    def test_tracking_info_must_be_short_strings(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order
        resp = client.patch(
            f"/api/orders/{order['id']}",
            json={"status": "confirmed", "tracking_info": {"description": {"x": 1}, "location": "L" * 121}},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"]["kind"] == "invalid-argument"
        assert set(resp.json["error"]["fields"]) == {"tracking_info.description", "tracking_info.location"}

        fresh = client.get(f"/api/orders/{order['id']}", headers=admin_headers).json["order"]
        assert fresh["status"] == "pending"
        assert len(fresh["tracking_history"]) == 1

    def test_unknown_status_is_400(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order
        resp = client.patch(f"/api/orders/{order['id']}", json={"status": "lost"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "status" in resp.json["error"]["fields"]

    def test_missing_order_is_404(self, client, db_session, admin_headers):
        resp = client.patch("/api/orders/987654", json={"status": "confirmed"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_requires_admin(self, client, db_session, placed_order, customer_headers):
        order, _ = placed_order
        resp = client.patch(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=customer_headers)
        assert resp.status_code == 403


class TestServiceOptions:

    def test_permissive_mode(self, db_session, placed_order, admin):
        order, _ = placed_order
        order_service.update_order_status(order["id"], "delivered", strict=False, actor_user_id=admin.id)
        updated = order_service.update_order_status(order["id"], "pending", strict=False, actor_user_id=admin.id)

        assert updated.status == "pending"
        assert [e.status for e in updated.tracking_events] == ["Order Placed", "Delivered", "Pending"]

    def test_strict_mode_raises(self, db_session, placed_order):
        order, _ = placed_order
        with pytest.raises(FailedPreconditionError):
            order_service.update_order_status(order["id"], "delivered")

    def test_invalid_status_raises(self, db_session, placed_order):
        order, _ = placed_order
        with pytest.raises(InvalidArgumentError):
            order_service.update_order_status(order["id"], "returned")

    def test_notify_flag_stages_customer_notification(self, db_session, placed_order, customer):
        order, _ = placed_order
        before = db_session.query(Notification).filter_by(user_id=customer.id).count()

        order_service.update_order_status(order["id"], "processing", notify=True)
        assert db_session.query(Notification).filter_by(user_id=customer.id).count() == before

        order_service.update_order_status(order["id"], "shipped", notify=True)
        titles = [n.title for n in db_session.query(Notification).filter_by(user_id=customer.id).all()]
        assert f"Order Shipped - {order['order_number']}" in titles


class TestCancellation:

    def test_cancel_restores_stock(self, client, db_session, placed_order, admin_headers):
        order, product = placed_order
        db_session.refresh(product)
        assert product.stock == 7

        resp = client.patch(f"/api/orders/{order['id']}", json={"status": "cancelled"}, headers=admin_headers)
        assert resp.status_code == 200

        db_session.refresh(product)
        assert product.stock == 10
        reasons = [m.reason for m in db_session.query(StockMovement).filter_by(product_id=product.id).order_by(StockMovement.id)]
        assert reasons == ["order", "cancellation"]

    def test_cancelled_is_terminal(self, client, db_session, placed_order, admin_headers):
        order, _ = placed_order
        client.patch(f"/api/orders/{order['id']}", json={"status": "cancelled"}, headers=admin_headers)
        resp = client.patch(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_reopen_and_cancel_again_keeps_stock_balanced(self, db_session, placed_order, admin):
        order, product = placed_order

        for status in ("cancelled", "pending", "cancelled"):
            order_service.update_order_status(order["id"], status, strict=False, actor_user_id=admin.id)

        db_session.refresh(product)
        assert product.stock == 10
        reasons = [m.reason for m in db_session.query(StockMovement).filter_by(product_id=product.id).order_by(StockMovement.id)]
        assert reasons == ["order", "cancellation", "order", "cancellation"]

    def test_reopen_without_stock_is_rejected(self, db_session, placed_order, admin):
        order, product = placed_order
        order_service.update_order_status(order["id"], "cancelled", strict=False, actor_user_id=admin.id)
        inventory_service.apply_stock_delta(product.id, -9, reason=inventory_service.REASON_ADJUSTMENT)
        db_session.commit()

        with pytest.raises(FailedPreconditionError):
            order_service.update_order_status(order["id"], "pending", strict=False, actor_user_id=admin.id)

        db_session.refresh(product)
        assert product.stock == 1
        assert order_service.get_order(order["id"], Requester(user=admin)).status == "cancelled"
