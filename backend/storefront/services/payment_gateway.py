# Overview: Payment gateway interface and the simulated gateway used outside production.

"""
Payment Gateway

The payment service never talks to a processor directly. It builds a
VerificationRequest and hands it to a PaymentGateway, which answers with a
GatewayResult whose status is one of:

- "verified": the processor confirmed the money moved
- "pending":  the processor has not decided yet
- "failed":   declined, invalid OTP, or the draw came up negative

SimulatedGateway rules, in order:
1. transaction id containing "FAIL"    -> failed
2. transaction id containing "PENDING" -> pending
3. card with an OTP outside the test set -> failed
4. otherwise a weighted draw: UPI 85%, card 80%, anything else 75%

One gateway is built per app in create_app() and kept in
app.extensions["payment_gateway"]; routes pass it into the service.
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable


OUTCOME_VERIFIED = "verified"
OUTCOME_PENDING = "pending"
OUTCOME_FAILED = "failed"

SUCCESS_RATES = {
    "upi": 0.85,
    "card": 0.80,
}
DEFAULT_SUCCESS_RATE = 0.75

VALID_TEST_OTPS = frozenset({"123456", "000000", "111111"})


@dataclass(frozen=True)
class VerificationRequest:
    payment_method: str
    transaction_id: str
    amount_cents: int = 0
    otp: str | None = None
    upi_reference: str | None = None


@dataclass(frozen=True)
class GatewayResult:
    status: str
    message: str = ""

    @property
    def is_verified(self) -> bool:
        return self.status == OUTCOME_VERIFIED


class PaymentGateway(ABC):
    """Anything that can confirm a payment."""

    @abstractmethod
    def submit(self, request: VerificationRequest) -> GatewayResult:
        raise NotImplementedError


class SimulatedGateway(PaymentGateway):
    """
    Stand-in processor with deterministic overrides for testing.

    Args:
        rng: random.Random used for the success draw and the delay
        min_delay / max_delay: simulated latency bounds in seconds
        sleep: injected so tests can skip the wait
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        min_delay: float = 1.0,
        max_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("gateway delay bounds must satisfy 0 <= min_delay <= max_delay")
        self.rng = rng or random.Random()
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.sleep = sleep

    def _wait(self) -> None:
        if self.max_delay > 0:
            self.sleep(self.rng.uniform(self.min_delay, self.max_delay))

    def submit(self, request: VerificationRequest) -> GatewayResult:
        self._wait()

        transaction_id = request.transaction_id or ""
        if "FAIL" in transaction_id:
            return GatewayResult(OUTCOME_FAILED, "Transaction declined by gateway")
        if "PENDING" in transaction_id:
            return GatewayResult(OUTCOME_PENDING, "Awaiting confirmation from gateway")

        # Drawn before the OTP gate so a bad OTP fails even on a winning draw
        rate = SUCCESS_RATES.get(request.payment_method, DEFAULT_SUCCESS_RATE)
        approved = self.rng.random() < rate

        if request.payment_method == "card" and request.otp is not None:
            if request.otp not in VALID_TEST_OTPS:
                return GatewayResult(OUTCOME_FAILED, "Invalid OTP")

        if approved:
            return GatewayResult(OUTCOME_VERIFIED, "Payment verified")
        return GatewayResult(OUTCOME_FAILED, "Payment could not be verified")


def build_gateway(config) -> PaymentGateway:
    """Build the app's gateway from Flask config."""
    seed = config.get("PAYMENT_GATEWAY_SEED")
    return SimulatedGateway(
        rng=random.Random(int(seed)) if seed not in (None, "") else random.Random(),
        min_delay=float(config.get("PAYMENT_GATEWAY_MIN_DELAY", 1.0)),
        max_delay=float(config.get("PAYMENT_GATEWAY_MAX_DELAY", 5.0)),
    )
