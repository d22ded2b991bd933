"""
Mock Payment Service Implementation

Simulates Stripe-like hosted checkout without making real API calls.
Used in development mode (ENV_MODE=development) to:
    - Walk the full order → bill → paid flow locally
    - Run tests without network access or API keys

Behavior:
    - Generates Stripe-like session IDs (cs_mock_xxx) and checkout URLs
    - Accepts unsigned JSON webhooks shaped like Stripe events
    - Optional simulated failure rate for resilience testing

Version: 1.0.0
"""

import json
import logging
import random
import uuid
from typing import Optional

from tableorder.core.config import get_settings
from tableorder.services.payment.base import (
    BasePaymentService,
    CheckoutLine,
    CheckoutResult,
)

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Mock implementation of the payment service.

    Attributes:
        failure_rate: Probability of a simulated provider failure (0.0-1.0)
        sessions: Every checkout session created, keyed by session id

    Example:
        >>> service = MockPaymentService()
        >>> result = await service.create_checkout_session("ord-1", 12000, lines)
        >>> print(result.checkout_url)
    """

    def __init__(self, failure_rate: float = 0.0):
        self.failure_rate = failure_rate
        self.sessions: dict[str, dict] = {}
        logger.info(f"MockPaymentService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    def _generate_session_id(self) -> str:
        """Generate a Stripe-like checkout session ID."""
        return f"cs_mock_{uuid.uuid4().hex[:24]}"

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def create_checkout_session(
        self,
        order_id: str,
        amount_cents: int,
        lines: list[CheckoutLine],
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        currency = currency or get_settings().stripe_currency

        if self._should_fail():
            logger.warning(f"Mock checkout failed (simulated) for order {order_id}")
            return CheckoutResult(
                success=False,
                error_message="An error occurred while creating the checkout session.",
                error_code="processing_error",
            )

        session_id = self._generate_session_id()
        checkout_url = f"https://checkout.stripe.com/mock/{session_id}"
        self.sessions[session_id] = {
            "order_id": order_id,
            "amount_cents": amount_cents,
            "currency": currency,
            "lines": lines,
        }

        logger.info(f"Mock checkout created for order {order_id}: {checkout_url}")

        return CheckoutResult(
            success=True,
            checkout_url=checkout_url,
            session_id=session_id,
            amount_cents=amount_cents,
            currency=currency,
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """Parse the payload as JSON; mock webhooks are unsigned."""
        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("Mock webhook payload is not valid JSON")
            return None
        if not isinstance(event, dict) or "type" not in event:
            return None
        return event

    def completed_event(self, session_id: str) -> dict:
        """Build the webhook event Stripe would send for a paid session."""
        session = self.sessions[session_id]
        return {
            "id": f"evt_mock_{uuid.uuid4().hex[:24]}",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "amount_total": session["amount_cents"],
                    "currency": session["currency"],
                    "payment_status": "paid",
                    "metadata": {"order_id": session["order_id"]},
                }
            },
        }

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
