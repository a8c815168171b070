"""
Authentication and account tests.

Verifies:
- Register/login issue bearer tokens; logout revokes them
- Password strength and duplicate email checks
- Wrong credentials and disabled accounts get 401
- Saved addresses: first one is default, default moves on delete
"""

import pytest
from conftest import SHIPPING_ADDRESS, TEST_PASSWORD, auth_headers

from storefront.models import SessionToken, User


ADDRESS = {k: v for k, v in SHIPPING_ADDRESS.items() if k != "email"}


class TestRegister:

    def test_register_signs_in(self, client, db_session):
        resp = client.post(
            "/api/auth/register",
            json={"email": "New@Example.com", "password": "secret123", "name": "New Shopper"},
        )
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "new@example.com"
        assert resp.json["user"]["is_admin"] is False
        assert resp.json["expires_at"].endswith("Z")

        me = client.get("/api/auth/me", headers=auth_headers(resp.json["token"]))
        assert me.json["user"]["name"] == "New Shopper"

    def test_password_is_hashed(self, client, db_session):
        client.post("/api/auth/register", json={"email": "a@example.com", "password": "secret123", "name": "A"})
        user = db_session.query(User).filter_by(email="a@example.com").one()
        assert user.password_hash.startswith("$2")
        assert "secret123" not in user.password_hash

    def test_duplicate_email(self, client, db_session, customer):
        resp = client.post(
            "/api/auth/register",
            json={"email": customer.email.upper(), "password": "secret123", "name": "Copy"},
        )
        assert resp.status_code == 400
        assert resp.json["error"]["fields"] == {"email": "already registered"}

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678"])
    def test_weak_password(self, client, db_session, password):
        resp = client.post("/api/auth/register", json={"email": "w@example.com", "password": password, "name": "W"})
        assert resp.status_code == 400
        assert "password" in resp.json["error"]["fields"]

    def test_bad_email_and_name(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "nope", "password": "secret123", "name": " "})
        assert resp.status_code == 400
        assert set(resp.json["error"]["fields"]) == {"email", "name"}

    def test_non_object_body(self, client, db_session):
        resp = client.post("/api/auth/register", json=["x"])
        assert resp.status_code == 400


class TestLogin:

    def test_login(self, client, db_session, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == customer.id
        assert resp.json["user"]["last_login_at"] is not None
        assert "password_hash" not in resp.json["user"]

    def test_wrong_password(self, client, db_session, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong1234"})
        assert resp.status_code == 401
        assert resp.json["error"]["kind"] == "unauthenticated"

    def test_unknown_email(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 401
        assert resp.json["error"]["message"] == "Invalid email or password"

    def test_disabled_account(self, client, db_session, customer):
        customer.is_active = False
        db_session.commit()
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": TEST_PASSWORD})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "a@example.com"})
        assert resp.status_code == 400
        assert resp.json["error"]["fields"] == {"password": "is required"}


class TestSessions:

    def test_logout_revokes_token(self, client, db_session, customer, customer_headers):
        assert client.post("/api/auth/logout", headers=customer_headers).status_code == 200
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401
        assert db_session.query(SessionToken).filter_by(user_id=customer.id).one().is_revoked is True

    def test_missing_token(self, client, db_session):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json["error"]["message"] == "Authentication required"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401
        assert resp.json["error"]["message"] == "Invalid or expired token"

    def test_invalid_token_rejected_on_optional_routes(self, client, db_session):
        assert client.get("/api/products", headers=auth_headers("not-a-token")).status_code == 401

    def test_identity_does_not_carry_into_anonymous_requests(self, client, db_session, make_product, admin_headers):
        hidden = make_product("Hidden Lamp", is_active=False)

        assert client.get(f"/api/products/{hidden.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/products/{hidden.id}").status_code == 404
        assert client.get("/api/products?include_inactive=true").json["pagination"]["total"] == 0

        assert client.get("/api/auth/me", headers=admin_headers).status_code == 200
        assert client.get("/api/inventory").status_code == 401

    def test_deactivated_user_token(self, client, db_session, customer, customer_headers):
        customer.is_active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401


class TestAddresses:

    def _add(self, client, headers, **overrides):
        return client.post("/api/users/me/addresses", json={**ADDRESS, **overrides}, headers=headers)

    def test_first_address_is_default(self, client, db_session, customer_headers):
        first = self._add(client, customer_headers)
        second = self._add(client, customer_headers, label="work", city="Mysuru")

        assert first.status_code == second.status_code == 201
        assert first.json["address"]["is_default"] is True
        assert second.json["address"]["is_default"] is False
        assert first.json["address"]["label"] == "home"

    def test_set_default(self, client, db_session, customer_headers):
        first = self._add(client, customer_headers).json["address"]
        second = self._add(client, customer_headers, label="work").json["address"]

        resp = client.post(f"/api/users/me/addresses/{second['id']}/default", headers=customer_headers)
        assert resp.json["address"]["is_default"] is True

        listed = client.get("/api/users/me/addresses", headers=customer_headers).json["addresses"]
        assert [(a["id"], a["is_default"]) for a in listed] == [(second["id"], True), (first["id"], False)]

    def test_delete_default_promotes_next(self, client, db_session, customer_headers):
        first = self._add(client, customer_headers).json["address"]
        second = self._add(client, customer_headers, label="other").json["address"]

        assert client.delete(f"/api/users/me/addresses/{first['id']}", headers=customer_headers).status_code == 200
        listed = client.get("/api/users/me/addresses", headers=customer_headers).json["addresses"]
        assert [(a["id"], a["is_default"]) for a in listed] == [(second["id"], True)]

    def test_validation(self, client, db_session, customer_headers):
        resp = self._add(client, customer_headers, phone="123", zip_code="12", label="cabin")
        assert resp.status_code == 400
        assert {"address.phone", "address.zip_code", "address.label"} <= set(resp.json["error"]["fields"])

    def test_other_users_address(self, client, db_session, customer_headers, other_headers):
        address = self._add(client, customer_headers).json["address"]
        assert client.delete(f"/api/users/me/addresses/{address['id']}", headers=other_headers).status_code == 404
        assert client.post(f"/api/users/me/addresses/{address['id']}/default", headers=other_headers).status_code == 404
