"""
Payment Gateway Factory

Single entry point for obtaining the gateway of a canteen. Callers stay
agnostic about which implementation is active.

Usage:
    from canteen.services.payment import get_payment_gateway

    gateway = get_payment_gateway(canteen.code)
    intent = await gateway.create_payment_intent(240)

Environment Switching:
    - ENV_MODE=development → MockPaymentGateway (no API calls)
    - ENV_MODE=staging → StripePaymentGateway (test keys)
    - ENV_MODE=production → StripePaymentGateway (live keys)

Credentials are looked up by canteen code in STRIPE_CANTEEN_KEYS /
STRIPE_CANTEEN_PUBLISHABLE_KEYS and fall back to STRIPE_SECRET_KEY /
STRIPE_PUBLISHABLE_KEY.
"""

import logging
from functools import lru_cache

from canteen.core.config import get_settings
from canteen.services.payment.base import (
    BasePaymentGateway,
    PaymentResult,
)
from canteen.services.payment.mock import MockPaymentGateway
from canteen.services.payment.stripe import StripePaymentGateway

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_gateway(canteen_code: str) -> BasePaymentGateway:
    """
    Get the gateway for ``canteen_code``.

    Instances are cached per canteen so the mock keeps track of the intents
    it created.
    """
    settings = get_settings()

    if settings.is_development:
        logger.info(f"Payment Gateway: Using MockPaymentGateway for {canteen_code}")
        return MockPaymentGateway(
            canteen_code,
            failure_rate=settings.mock_payment_failure_rate,
            max_latency=settings.mock_payment_latency,
        )

    secret = settings.stripe_canteen_keys_map.get(canteen_code) or settings.stripe_secret_key
    public = (
        settings.stripe_canteen_publishable_keys_map.get(canteen_code)
        or settings.stripe_publishable_key
    )
    logger.info(
        f"Payment Gateway: Using StripePaymentGateway for {canteen_code} "
        f"({settings.env_mode.value} mode)"
    )
    return StripePaymentGateway(canteen_code, secret, public)


def reset_payment_gateways() -> None:
    """Drop cached gateways; the next lookup re-reads configuration."""
    get_payment_gateway.cache_clear()
    logger.debug("Payment gateway cache cleared")


__all__ = [
    "get_payment_gateway",
    "reset_payment_gateways",
    "BasePaymentGateway",
    "PaymentResult",
    "MockPaymentGateway",
    "StripePaymentGateway",
]
