"""
Notification tests.

Verifies:
- Inbox listing is per user, newest first, with type/unread filters
- Mark read (one and all) only touches the caller's notifications
- Admin single and bulk sends
- Order lifecycle messages go to signed-in owners only
"""

import pytest

from storefront.models import Notification
from storefront.services import notification_service


@pytest.fixture
def inbox(db_session, customer, other_customer):
    """Three notifications for customer, one for other_customer."""
    for title, ntype in (("Welcome", "system"), ("Sale", "promotion"), ("Reminder", "reminder")):
        notification_service.add_notification(customer.id, title, f"{title} message", ntype)
    notification_service.add_notification(other_customer.id, "Private", "Not yours", "system")
    db_session.commit()
    return {n.title: n for n in db_session.query(Notification).all()}


class TestInbox:

    def test_list_newest_first(self, client, db_session, inbox, customer_headers):
        resp = client.get("/api/notifications", headers=customer_headers)
        assert resp.status_code == 200
        assert [n["title"] for n in resp.json["notifications"]] == ["Reminder", "Sale", "Welcome"]
        assert resp.json["unread_count"] == 3
        assert resp.json["pagination"]["total"] == 3

    def test_filters(self, client, db_session, inbox, customer_headers):
        resp = client.get("/api/notifications?type=promotion", headers=customer_headers)
        assert [n["title"] for n in resp.json["notifications"]] == ["Sale"]

        client.post(f"/api/notifications/{inbox['Sale'].id}/read", headers=customer_headers)
        resp = client.get("/api/notifications?unread_only=true", headers=customer_headers)
        assert [n["title"] for n in resp.json["notifications"]] == ["Reminder", "Welcome"]

    def test_invalid_type(self, client, db_session, customer_headers):
        resp = client.get("/api/notifications?type=spam", headers=customer_headers)
        assert resp.status_code == 400

    def test_pagination(self, client, db_session, inbox, customer_headers):
        resp = client.get("/api/notifications?page=2&limit=2", headers=customer_headers)
        assert [n["title"] for n in resp.json["notifications"]] == ["Welcome"]
        assert resp.json["pagination"]["has_prev"] is True
        assert resp.json["pagination"]["has_next"] is False

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/notifications").status_code == 401


class TestMarkRead:

    def test_mark_one(self, client, db_session, inbox, customer_headers):
        resp = client.post(f"/api/notifications/{inbox['Welcome'].id}/read", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["notification"]["read"] is True
        assert resp.json["notification"]["read_at"] is not None
        assert client.get("/api/notifications/unread-count", headers=customer_headers).json["unread_count"] == 2

    def test_other_users_notification_is_missing(self, client, db_session, inbox, customer_headers):
        resp = client.post(f"/api/notifications/{inbox['Private'].id}/read", headers=customer_headers)
        assert resp.status_code == 404
        db_session.refresh(inbox["Private"])
        assert inbox["Private"].read is False

    def test_mark_all(self, client, db_session, inbox, customer_headers, other_headers):
        resp = client.post("/api/notifications/read-all", headers=customer_headers)
        assert resp.json["updated"] == 3
        assert client.post("/api/notifications/read-all", headers=customer_headers).json["updated"] == 0
        assert client.get("/api/notifications/unread-count", headers=other_headers).json["unread_count"] == 1


class TestAdminSend:

    def test_send_single(self, client, db_session, customer, admin_headers):
        resp = client.post(
            "/api/notifications",
            json={
                "action": "sendNotification",
                "user_id": customer.id,
                "title": "Flash sale",
                "message": "50% off today",
                "type": "promotion",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["notification"]["user_id"] == customer.id
        assert resp.json["notification"]["type"] == "promotion"

    def test_send_single_defaults_to_system(self, client, db_session, customer, admin_headers):
        resp = client.post(
            "/api/notifications",
            json={"action": "sendNotification", "user_id": customer.id, "title": "Hi", "message": "Hello"},
            headers=admin_headers,
        )
        assert resp.json["notification"]["type"] == "system"

    def test_send_to_unknown_user(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/notifications",
            json={"action": "sendNotification", "user_id": 9999, "title": "Hi", "message": "Hello"},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_send_bulk(self, client, db_session, customer, other_customer, admin_headers):
        resp = client.post(
            "/api/notifications",
            json={
                "action": "sendBulkNotification",
                "user_ids": [customer.id, other_customer.id, 9999, customer.id],
                "title": "Maintenance",
                "message": "Back soon",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["sent"] == 2
        assert resp.json["skipped_user_ids"] == [9999]
        assert db_session.query(Notification).count() == 2

    def test_validation(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/notifications",
            json={"action": "sendBulkNotification", "user_ids": [], "type": "spam"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert {"user_ids", "title", "message", "type"} <= set(resp.json["error"]["fields"])

    def test_customer_cannot_send(self, client, db_session, customer, customer_headers):
        resp = client.post(
            "/api/notifications",
            json={"action": "sendNotification", "user_id": customer.id, "title": "Hi", "message": "Hello"},
            headers=customer_headers,
        )
        assert resp.status_code == 403


class TestOrderMessages:

    def test_status_messages(self):
        class FakeOrder:
            order_number = "ORD-261019-ABC123"
            tracking_number = "FK12345678XYZ"

        order = FakeOrder()
        assert notification_service.order_status_message(order, "shipped") == (
            "Order Shipped - ORD-261019-ABC123",
            "Your order ORD-261019-ABC123 has been shipped. Tracking number: FK12345678XYZ.",
        )
        assert notification_service.order_status_message(order, "processing") is None

    def test_guest_orders_get_no_notification(self, db_session):
        class GuestOrder:
            user_id = None
            id = 1
            order_number = "ORD-261019-ABC123"
            tracking_number = "FK12345678XYZ"

        order = GuestOrder()
        result = notification_service.notify_order_event(order, notification_service.order_placed_message(order))
        assert result is None
        assert db_session.query(Notification).count() == 0
