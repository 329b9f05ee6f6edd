"""
Payment Gateway Abstract Base Class

Defines the interface every payment gateway implementation provides. Each
canteen settles through its own gateway account, so one gateway instance is
bound to one canteen code and its credentials.

Flow:
    1. ``create_payment_intent`` when the customer starts checkout
    2. the client completes the payment with the returned ``client_secret``
    3. ``confirm_payment`` on the server before the order is recorded
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class PaymentResult:
    """
    Standardized result from a gateway call.

    Attributes:
        success: Whether the call succeeded (for confirmations: whether money moved)
        payment_intent_id: Gateway identifier of the payment (``pi_...``)
        amount: Amount in major currency units (rupees, not paise)
        currency: Lowercase currency code
        status: Gateway-side status of the intent
        client_secret: Secret the client needs to complete the payment
        error_message: Error description if the call failed
        error_code: Machine-readable error code
        response_time_ms: Time taken by the gateway call
        metadata: Extra data attached to the intent
    """
    success: bool
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "inr"
    status: Optional[str] = None
    client_secret: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "payment_intent_id": self.payment_intent_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "response_time_ms": self.response_time_ms,
        }


class BasePaymentGateway(ABC):
    """
    Payment gateway bound to a single canteen.

    Args:
        canteen_code: Canteen slug the credentials belong to (``canteen-a``)
        secret_key: Server-side API key
        public_key: Key the client uses to render the checkout
    """

    def __init__(self, canteen_code: str, secret_key: Optional[str], public_key: Optional[str]):
        self.canteen_code = canteen_code
        self._secret_key = secret_key
        self._public_key = public_key

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Gateway name ("mock", "stripe")."""

    @property
    def public_key(self) -> Optional[str]:
        return self._public_key

    @abstractmethod
    def has_valid_config(self) -> bool:
        """True when real (non-placeholder) credentials are configured."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "inr",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create a payment intent for client-side confirmation.

        Args:
            amount: Amount in rupees
            currency: Currency code
            metadata: Key-value data stored on the intent
        """

    @abstractmethod
    async def confirm_payment(self, payment_intent_id: str) -> PaymentResult:
        """
        Check with the gateway that the intent has been paid.

        ``success`` is True only when the gateway reports the payment as
        completed.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify connectivity to the gateway."""
