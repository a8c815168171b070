"""
Simulated payment gateway tests.

The gateway is exercised directly; no app or database is needed.
"""

import random

import pytest

from storefront.services.payment_gateway import (
    SimulatedGateway,
    VerificationRequest,
    build_gateway,
)


class FakeRng:
    """random.Random stand-in with a fixed draw."""

    def __init__(self, draw: float):
        self.draw = draw
        self.uniform_calls = []

    def random(self) -> float:
        return self.draw

    def uniform(self, a: float, b: float) -> float:
        self.uniform_calls.append((a, b))
        return b


def _request(method="upi", transaction_id="TXN_0001", otp=None):
    return VerificationRequest(
        payment_method=method,
        transaction_id=transaction_id,
        amount_cents=10000,
        otp=otp,
    )


def _gateway(rng) -> SimulatedGateway:
    return SimulatedGateway(rng=rng, min_delay=0, max_delay=0)


class TestDeterministicOverrides:

    @pytest.mark.parametrize("seed", range(25))
    def test_fail_marker(self, seed):
        result = _gateway(random.Random(seed)).submit(_request(transaction_id="TXN_FAIL_001"))
        assert result.status == "failed"

    @pytest.mark.parametrize("seed", range(25))
    def test_pending_marker(self, seed):
        result = _gateway(random.Random(seed)).submit(_request(transaction_id="TXN_PENDING_001"))
        assert result.status == "pending"

    def test_fail_checked_before_pending(self):
        result = _gateway(FakeRng(0.0)).submit(_request(transaction_id="PENDING_FAIL"))
        assert result.status == "failed"

    def test_markers_win_over_winning_draw(self):
        gateway = _gateway(FakeRng(0.0))
        assert gateway.submit(_request(transaction_id="TXN_FAIL_001")).status == "failed"
        assert gateway.submit(_request(transaction_id="TXN_PENDING_001")).status == "pending"


class TestSuccessRates:

    def test_upi_rate(self):
        assert _gateway(FakeRng(0.84)).submit(_request("upi")).status == "verified"
        assert _gateway(FakeRng(0.85)).submit(_request("upi")).status == "failed"

    def test_card_rate(self):
        assert _gateway(FakeRng(0.79)).submit(_request("card")).status == "verified"
        assert _gateway(FakeRng(0.80)).submit(_request("card")).status == "failed"

    def test_other_method_rate(self):
        assert _gateway(FakeRng(0.74)).submit(_request("wallet")).status == "verified"
        assert _gateway(FakeRng(0.75)).submit(_request("wallet")).status == "failed"


class TestCardOtp:

    def test_bad_otp_fails_despite_winning_draw(self):
        result = _gateway(FakeRng(0.0)).submit(_request("card", otp="999999"))
        assert result.status == "failed"
        assert result.message == "Invalid OTP"

    @pytest.mark.parametrize("otp", ["123456", "000000", "111111"])
    def test_test_otps_pass(self, otp):
        assert _gateway(FakeRng(0.0)).submit(_request("card", otp=otp)).status == "verified"

    def test_otp_ignored_for_upi(self):
        assert _gateway(FakeRng(0.0)).submit(_request("upi", otp="999999")).status == "verified"


class TestDelay:

    def test_sleeps_within_bounds(self):
        slept = []
        rng = FakeRng(0.0)
        gateway = SimulatedGateway(rng=rng, min_delay=1.0, max_delay=5.0, sleep=slept.append)

        gateway.submit(_request())
        assert rng.uniform_calls == [(1.0, 5.0)]
        assert slept == [5.0]

    def test_zero_delay_does_not_sleep(self):
        slept = []
        SimulatedGateway(rng=FakeRng(0.0), min_delay=0, max_delay=0, sleep=slept.append).submit(_request())
        assert slept == []

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            SimulatedGateway(min_delay=3, max_delay=1)


class TestBuildGateway:

    def test_seeded_gateways_agree(self):
        config = {"PAYMENT_GATEWAY_SEED": "42", "PAYMENT_GATEWAY_MIN_DELAY": 0, "PAYMENT_GATEWAY_MAX_DELAY": 0}
        first, second = build_gateway(config), build_gateway(config)

        outcomes_a = [first.submit(_request(transaction_id=f"T{i}")).status for i in range(20)]
        outcomes_b = [second.submit(_request(transaction_id=f"T{i}")).status for i in range(20)]
        assert outcomes_a == outcomes_b

    def test_delay_bounds_from_config(self):
        gateway = build_gateway({"PAYMENT_GATEWAY_MIN_DELAY": "0.5", "PAYMENT_GATEWAY_MAX_DELAY": "2"})
        assert (gateway.min_delay, gateway.max_delay) == (0.5, 2.0)
