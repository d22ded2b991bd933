"""
Payment Service Abstract Base Class

Defines the interface contract for hosted-checkout providers.
Both MockPaymentService and StripePaymentService implement these methods,
so billing behaves the same regardless of which service is active.

Design Pattern: Strategy Pattern
    - Allows runtime switching between payment providers
    - Facilitates testing with the mock implementation

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CheckoutLine:
    """One bill line sent to the provider (amounts in minor units)."""
    name: str
    unit_amount_cents: int
    quantity: int


@dataclass
class CheckoutResult:
    """
    Standardized result from creating a checkout session.

    Attributes:
        success: Whether the session was created
        checkout_url: Hosted payment page for the customer
        session_id: Provider session identifier (Stripe format: cs_xxx)
        amount_cents: Total the customer will be charged
        error_message: Error description if creation failed
        error_code: Machine-readable error code
        metadata: Additional data from the payment provider
    """
    success: bool
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    amount_cents: int = 0
    currency: str = "inr"
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    metadata: dict = field(default_factory=dict)


class PaymentProviderError(Exception):
    """The provider could not create a checkout session."""

    def __init__(self, result: CheckoutResult):
        self.result = result
        super().__init__(result.error_message or "Payment provider error")


class BasePaymentService(ABC):
    """Abstract base class for payment services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "mock", "stripe")
        """
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        order_id: str,
        amount_cents: int,
        lines: list[CheckoutLine],
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a hosted checkout page for an order's bill.

        Args:
            order_id: Order being paid, attached as session metadata
            amount_cents: Expected total in minor units
            lines: Bill lines shown on the checkout page
            currency: Three-letter currency code

        Returns:
            CheckoutResult: Standardized result object
        """
        pass

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """
        Verify and parse a webhook from the payment provider.

        Args:
            payload: Raw request body bytes
            signature: Signature header from the request

        Returns:
            dict: Parsed webhook event if valid, None if invalid
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the payment service.

        Returns:
            bool: True if service is reachable and operational
        """
        pass
