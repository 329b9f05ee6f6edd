"""
Stripe Payment Gateway

Production implementation using the official Stripe Python SDK. Used when
ENV_MODE=staging or ENV_MODE=production.

Each canteen has its own Stripe account, so the API key is passed per call
instead of through the global ``stripe.api_key``. SDK calls are blocking and
run in the threadpool.

Security Notes:
    - Secret keys never leave the server; only the publishable key is exposed
    - Payments are confirmed by retrieving the intent, never by trusting the client
"""

import logging
import time
from typing import Optional

import stripe
from starlette.concurrency import run_in_threadpool

from canteen.services.payment.base import (
    BasePaymentGateway,
    PaymentResult,
)

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2023-10-16"


def _to_minor_units(amount: float) -> int:
    """Rupees to paise; Stripe expects the smallest currency unit."""
    return int(round(amount * 100))


def _from_minor_units(amount: int) -> float:
    return amount / 100.0


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class StripePaymentGateway(BasePaymentGateway):
    """
    Stripe gateway for one canteen.

    Example:
        >>> gateway = StripePaymentGateway("canteen-a", "sk_test_...", "pk_test_...")
        >>> result = await gateway.create_payment_intent(240, metadata={"user_id": "..."})
        >>> result.client_secret
    """

    def __init__(self, canteen_code: str, secret_key: Optional[str], public_key: Optional[str]):
        super().__init__(canteen_code, secret_key, public_key)
        logger.info(
            f"StripePaymentGateway initialized for {canteen_code} "
            f"(configured={self.has_valid_config()})"
        )

    @property
    def provider_name(self) -> str:
        return "stripe"

    def has_valid_config(self) -> bool:
        secret, public = self._secret_key or "", self._public_key or ""
        return (
            secret.startswith("sk_")
            and public.startswith("pk_")
            and "placeholder" not in secret
            and "placeholder" not in public
        )

    def _call(self, fn, **params):
        return run_in_threadpool(
            fn,
            api_key=self._secret_key,
            stripe_version=STRIPE_API_VERSION,
            **params,
        )

    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "inr",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        started = time.perf_counter()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        try:
            intent = await self._call(
                stripe.PaymentIntent.create,
                amount=_to_minor_units(amount),
                currency=currency.lower(),
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.AuthenticationError as e:
            logger.critical(f"Stripe: Authentication failed for {self.canteen_code} - {e}")
            return PaymentResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="authentication_error",
            )
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe: Connection error - {e}")
            return PaymentResult(
                success=False,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
                response_time_ms=_elapsed_ms(started),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to create PaymentIntent - {e}")
            return PaymentResult(
                success=False,
                error_message=getattr(e, "user_message", None) or "Payment processing error",
                error_code=getattr(e, "code", None) or "stripe_error",
                response_time_ms=_elapsed_ms(started),
            )

        logger.debug(f"Stripe: PaymentIntent created - {intent.id}")
        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            amount=_from_minor_units(intent.amount),
            currency=intent.currency,
            status=intent.status,
            client_secret=intent.client_secret,
            response_time_ms=_elapsed_ms(started),
            metadata=dict(intent.metadata or {}),
        )

    async def confirm_payment(self, payment_intent_id: str) -> PaymentResult:
        started = time.perf_counter()
        try:
            intent = await self._call(stripe.PaymentIntent.retrieve, id=payment_intent_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe: Unknown PaymentIntent {payment_intent_id} - {e}")
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message="Unknown payment intent",
                error_code="resource_missing",
                response_time_ms=_elapsed_ms(started),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to retrieve PaymentIntent - {e}")
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message="Payment processing error",
                error_code="stripe_error",
                response_time_ms=_elapsed_ms(started),
            )

        paid = intent.status == "succeeded"
        if not paid:
            logger.info(f"Stripe: PaymentIntent {intent.id} not paid (status={intent.status})")
        return PaymentResult(
            success=paid,
            payment_intent_id=intent.id,
            amount=_from_minor_units(intent.amount),
            currency=intent.currency,
            status=intent.status,
            error_message=None if paid else "Payment not completed",
            error_code=None if paid else "payment_incomplete",
            response_time_ms=_elapsed_ms(started),
            metadata=dict(intent.metadata or {}),
        )

    async def health_check(self) -> bool:
        if not self.has_valid_config():
            return False
        try:
            await self._call(stripe.Balance.retrieve)
        except stripe.StripeError as e:
            logger.error(f"Stripe: Health check failed for {self.canteen_code} - {e}")
            return False
        return True
