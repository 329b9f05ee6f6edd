"""
Mock Payment Gateway

Simulates a Stripe-like gateway without network calls. Used in development
mode (ENV_MODE=development) so checkout can be exercised end to end locally.

Behavior:
    - Simulated latency between 0 and ``max_latency`` seconds
    - Confirmations are declined with probability ``failure_rate``
    - Stripe-like ids (pi_mock_..., re_mock_...)
    - Intents are remembered, so confirming an unknown id fails
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from canteen.services.payment.base import (
    BasePaymentGateway,
    PaymentResult,
)

logger = logging.getLogger(__name__)


class MockPaymentGateway(BasePaymentGateway):
    """
    In-memory gateway for one canteen.

    Attributes:
        failure_rate: Probability that a confirmation is declined (0.0-1.0)
        max_latency: Upper bound of the simulated response time in seconds
    """

    DECLINE_REASONS = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
        ("processing_error", "An error occurred while processing your card."),
    ]

    def __init__(
        self,
        canteen_code: str,
        failure_rate: float = 0.0,
        max_latency: float = 0.3,
    ):
        super().__init__(
            canteen_code,
            secret_key=f"sk_test_mock_{canteen_code}",
            public_key=f"pk_test_mock_{canteen_code}",
        )
        self.failure_rate = failure_rate
        self.max_latency = max_latency
        self._intents: dict[str, PaymentResult] = {}

        logger.info(
            f"MockPaymentGateway initialized for {canteen_code} "
            f"(failure_rate={failure_rate:.0%})"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def has_valid_config(self) -> bool:
        return True

    async def _simulate_latency(self) -> float:
        latency = random.uniform(0, self.max_latency) if self.max_latency > 0 else 0.0
        await asyncio.sleep(latency)
        return latency * 1000

    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "inr",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        latency_ms = await self._simulate_latency()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
                response_time_ms=latency_ms,
            )

        intent_id = f"pi_mock_{uuid.uuid4().hex[:24]}"
        result = PaymentResult(
            success=True,
            payment_intent_id=intent_id,
            amount=round(amount, 2),
            currency=currency.lower(),
            status="requires_payment_method",
            client_secret=f"{intent_id}_secret_mock",
            response_time_ms=latency_ms,
            metadata={"mock": True, **(metadata or {})},
        )
        self._intents[intent_id] = result

        logger.debug(f"Mock: Created payment intent {intent_id} for {self.canteen_code}")
        return result

    async def confirm_payment(self, payment_intent_id: str) -> PaymentResult:
        latency_ms = await self._simulate_latency()

        intent = self._intents.get(payment_intent_id)
        if intent is None:
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message="Unknown payment intent",
                error_code="resource_missing",
                response_time_ms=latency_ms,
            )

        if random.random() < self.failure_rate:
            error_code, error_message = random.choice(self.DECLINE_REASONS)
            logger.debug(f"Mock: Payment declined - {error_code}")
            intent.status = "requires_payment_method"
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                amount=intent.amount,
                currency=intent.currency,
                status=intent.status,
                error_message=error_message,
                error_code=error_code,
                response_time_ms=latency_ms,
            )

        intent.status = "succeeded"
        logger.info(f"Mock: Payment succeeded - {payment_intent_id} - {intent.amount:.2f}")
        return PaymentResult(
            success=True,
            payment_intent_id=payment_intent_id,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
            response_time_ms=latency_ms,
            metadata=intent.metadata,
        )

    async def health_check(self) -> bool:
        return True
