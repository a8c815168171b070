"""
Health endpoint, CORS, error envelope and CLI tests.
"""

import pytest

from storefront.models import Product, StockMovement, User
from storefront.services import order_service, payment_service, products_service


class TestHealth:

    def test_healthy(self, client, db_session, make_product):
        make_product("Lamp")
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"] == {"products": 1, "orders": 0}
        assert resp.json["gateway"] == "SimulatedGateway"


class TestCors:

    def test_known_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "X-Session-Id" in resp.headers["Access-Control-Allow-Headers"]

    def test_unknown_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestErrorEnvelope:

    def test_unexpected_error_is_hidden(self, client, db_session, admin_headers, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("connection string with secrets")

        monkeypatch.setattr(products_service, "create_product", boom)
        resp = client.post("/api/products", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json == {
            "success": False,
            "error": {"kind": "internal", "message": "Internal server error"},
        }

    @pytest.mark.parametrize(
        "service,name,path",
        [
            (order_service, "get_order", "/api/orders/1"),
            (order_service, "track_order", "/api/orders/track/FK123?email=a@b.co"),
            (payment_service, "get_payment", "/api/payments/PAY-1"),
            (payment_service, "list_order_payments", "/api/payments/order/1"),
            (products_service, "get_product", "/api/products/1"),
        ],
    )
    def test_read_routes_return_json_on_failure(self, client, db_session, monkeypatch, service, name, path):
        def boom(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(service, name, boom)
        resp = client.get(path)
        assert resp.status_code == 500
        assert resp.json["error"]["kind"] == "internal"

    def test_error_kinds(self, client, db_session, customer_headers):
        assert client.get("/api/products/999").json["error"]["kind"] == "not-found"
        assert client.get("/api/inventory", headers=customer_headers).json["error"]["kind"] == "permission-denied"
        assert client.get("/api/products?sort=x").json["error"]["kind"] == "invalid-argument"


class TestCli:

    @pytest.fixture
    def runner(self, app):
        return app.test_cli_runner()

    def test_seed_is_idempotent(self, runner, db_session):
        result = runner.invoke(args=["catalog", "seed"])
        assert result.exit_code == 0, result.output
        assert "Seeded 8 products" in result.output
        assert db_session.query(Product).count() == 8
        assert db_session.query(StockMovement).filter_by(reason="restock").count() == 8

        iphone = db_session.query(Product).filter_by(sku="DEMO-IPHONE-15-PRO").one()
        assert iphone.sale_price_cents == 12990000
        assert iphone.stock == 50

        again = runner.invoke(args=["catalog", "seed"])
        assert "Seeded 0 products" in again.output
        assert "SKIP DEMO-YOGA-MAT already exists" in again.output
        assert db_session.query(Product).count() == 8

    def _create_admin(self, runner, secret="s3cret"):
        return runner.invoke(args=[
            "users", "create-admin",
            "--email", "root@example.com",
            "--name", "Root",
            "--password", "Password123",
            "--admin-secret", secret,
        ])

    def test_create_admin(self, app, runner, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_SECRET", "s3cret")
        result = self._create_admin(runner)
        assert result.exit_code == 0, result.output
        assert db_session.query(User).filter_by(email="root@example.com").one().is_admin is True

    def test_create_admin_requires_secret(self, app, runner, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_SECRET", None)
        result = self._create_admin(runner)
        assert result.exit_code != 0
        assert "ADMIN_SECRET is not configured" in result.output
        assert db_session.query(User).count() == 0

    def test_create_admin_wrong_secret(self, app, runner, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_SECRET", "s3cret")
        result = self._create_admin(runner, secret="guess")
        assert result.exit_code != 0
        assert "does not match" in result.output

    def test_create_admin_refused_in_production(self, app, runner, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_SECRET", "s3cret")
        monkeypatch.setitem(app.config, "APP_ENV", "production")
        result = self._create_admin(runner)
        assert result.exit_code != 0
        assert "production" in result.output

    def test_low_stock(self, runner, db_session, make_product):
        make_product("Nearly Gone", stock=1)
        result = runner.invoke(args=["inventory", "low-stock"])
        assert "Nearly Gone" in result.output

    def test_expire_stale(self, runner, db_session):
        result = runner.invoke(args=["payments", "expire-stale", "--minutes", "5"])
        assert result.exit_code == 0
        assert "Expired 0 payments older than 5 minutes" in result.output
