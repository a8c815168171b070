"""
Checkout form validation and card helper tests.
"""

from datetime import datetime

import pytest

from storefront.services.payment_service import (
    build_upi_url,
    card_expired,
    detect_card_brand,
    luhn_valid,
    mask_card_number,
)


class TestZipValidation:

    def test_serviceable(self, client):
        resp = client.post("/api/checkout/validate-zip", json={"zip_code": "560001", "country": "India"})
        assert resp.status_code == 200
        assert resp.json["valid"] is True
        assert resp.json["serviceable_areas"] == ["standard", "express"]
        assert resp.json["estimated_delivery_days"] == 3

    def test_unserviceable_prefix_gets_suggestions(self, client):
        resp = client.post("/api/checkout/validate-zip", json={"zip_code": "944001"})
        assert resp.json["valid"] is False
        assert resp.json["suggestions"] == [
            {"zip_code": "144001", "confidence": 0.9},
            {"zip_code": "244001", "confidence": 0.8},
        ]

    @pytest.mark.parametrize("zip_code", ["1234", "12345678901"])
    def test_length(self, client, zip_code):
        resp = client.post("/api/checkout/validate-zip", json={"zip_code": zip_code})
        assert resp.status_code == 400
        assert "zip_code" in resp.json["error"]["fields"]

    def test_missing(self, client):
        assert client.post("/api/checkout/validate-zip", json={}).status_code == 400


class TestPhoneValidation:

    @pytest.mark.parametrize("phone", ["9876543210", "98765 43210", "+91 98765-43210"])
    def test_indian_mobile(self, client, phone):
        resp = client.post("/api/checkout/validate-phone", json={"phone": phone})
        assert resp.json["valid"] is True
        assert resp.json["formatted"] == "+91-98765-43210"

    def test_indian_landline_prefix_rejected(self, client):
        resp = client.post("/api/checkout/validate-phone", json={"phone": "2345678901", "country_code": "+91"})
        assert resp.json["valid"] is False
        assert resp.json["formatted"] is None

    def test_other_country(self, client):
        resp = client.post("/api/checkout/validate-phone", json={"phone": "415 555 0100", "country_code": "+1"})
        assert resp.json["valid"] is True
        assert resp.json["formatted"] == "+1-4155550100"

    def test_no_digits(self, client):
        assert client.post("/api/checkout/validate-phone", json={"phone": "call me"}).status_code == 400


class TestEmailValidation:

    def test_valid(self, client):
        resp = client.post("/api/checkout/validate-email", json={"email": "asha@example.com"})
        assert resp.json == {
            "success": True,
            "valid": True,
            "email": "asha@example.com",
            "domain": "example.com",
            "suggestions": [],
        }

    def test_invalid(self, client):
        resp = client.post("/api/checkout/validate-email", json={"email": "asha@example"})
        assert resp.json["valid"] is False
        assert resp.json["suggestions"] == ["Please check the email format"]


class TestCardHelpers:

    @pytest.mark.parametrize("number, valid", [
        ("4111111111111111", True),
        ("5555555555554444", True),
        ("378282246310005", True),
        ("4000000000000002", True),
        ("4111111111111112", False),
        ("4111", False),
        ("4111-1111-1111-1111", False),
    ])
    def test_luhn(self, number, valid):
        assert luhn_valid(number) is valid

    @pytest.mark.parametrize("number, brand", [
        ("4111111111111111", "visa"),
        ("5555555555554444", "mastercard"),
        ("2221000000000009", "mastercard"),
        ("378282246310005", "amex"),
        ("6011111111111117", "discover"),
        ("6521000000000000", "discover"),
        ("6070000000000000", "rupay"),
        ("9000000000000000", "unknown"),
    ])
    def test_brand(self, number, brand):
        assert detect_card_brand(number) == brand

    def test_mask(self):
        assert mask_card_number("4111111111111111") == "XXXX-XXXX-XXXX-1111"

    def test_expiry_month_is_inclusive(self):
        now = datetime(2026, 10, 19)
        assert card_expired(10, 2026, now) is False
        assert card_expired(9, 2026, now) is True
        assert card_expired(1, 2027, now) is False

    def test_upi_url_encoding(self):
        url = build_upi_url(
            merchant_upi_id="my.shop@okaxis",
            merchant_name="Rao & Sons",
            amount_cents=123456,
            reference="TX1",
            order_number="ORD-1",
        )
        assert url == "upi://pay?pa=my.shop@okaxis&pn=Rao%20%26%20Sons&am=1234.56&cu=INR&tr=TX1&tn=Order%20ORD-1"
