"""
Stripe Payment Service Implementation

Production implementation using the official Stripe Python SDK and
Stripe Checkout. Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STRIPE_SECRET_KEY must be set in environment
    - STRIPE_WEBHOOK_SECRET for webhook verification

Security Notes:
    - Always verify webhook signatures
    - Amounts come from the stored order, never from the client

Version: 1.0.0
"""

import asyncio
import json
import logging
from typing import Optional

import stripe

from tableorder.core.config import get_settings
from tableorder.services.payment.base import (
    BasePaymentService,
    CheckoutLine,
    CheckoutResult,
)

logger = logging.getLogger(__name__)


class StripePaymentService(BasePaymentService):
    """
    Production Stripe payment service implementation.

    Creates hosted Checkout Sessions for served orders and verifies the
    signed webhooks Stripe sends when they complete.

    Example:
        >>> service = StripePaymentService()
        >>> result = await service.create_checkout_session(order_id, 31000, lines)
    """

    def __init__(self):
        """
        Initialize Stripe with API key from settings.

        Raises:
            ValueError: If STRIPE_SECRET_KEY is not configured
        """
        settings = get_settings()

        if not settings.stripe_secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        stripe.api_key = settings.stripe_secret_key

        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.stripe_currency
        self._base_url = settings.app_base_url.rstrip("/")

        logger.info("StripePaymentService initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "stripe"

    async def create_checkout_session(
        self,
        order_id: str,
        amount_cents: int,
        lines: list[CheckoutLine],
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        currency = currency or self._currency
        logger.info(f"Stripe: Creating checkout for order {order_id} ({amount_cents} {currency})")

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {"name": line.name},
                            "unit_amount": line.unit_amount_cents,
                        },
                        "quantity": line.quantity,
                    }
                    for line in lines
                ],
                metadata={"order_id": order_id},
                success_url=f"{self._base_url}/bill/{order_id}?status=success",
                cancel_url=f"{self._base_url}/bill/{order_id}?status=cancelled",
            )
        except stripe.AuthenticationError as e:
            logger.critical(f"Stripe: Authentication failed - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="authentication_error",
            )
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe: Connection error - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Error - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment processing error",
                error_code="stripe_error",
            )

        if session.amount_total is not None and session.amount_total != amount_cents:
            logger.warning(
                f"Stripe: Session {session.id} total {session.amount_total} "
                f"differs from order total {amount_cents}"
            )

        logger.info(f"Stripe: Checkout session created - {session.id}")

        return CheckoutResult(
            success=True,
            checkout_url=session.url,
            session_id=session.id,
            amount_cents=amount_cents,
            currency=currency,
            metadata={"status": session.status},
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """
        Verify and parse a Stripe webhook event.

        SECURITY: Unsigned events are rejected; there is no fallback
        when STRIPE_WEBHOOK_SECRET is missing.
        """
        if not self._webhook_secret:
            logger.error("Stripe: Webhook secret not configured, rejecting event")
            return None
        if not signature:
            logger.warning("Stripe: Webhook without Stripe-Signature header")
            return None

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe: Webhook signature invalid - {e}")
            return None
        except ValueError as e:
            logger.warning(f"Stripe: Webhook payload invalid - {e}")
            return None

        logger.debug(f"Stripe: Webhook verified - {event['type']}")
        # Plain dicts all the way down, same shape as the mock provider
        return json.loads(payload)

    async def health_check(self) -> bool:
        """
        Verify Stripe API connectivity.

        Makes a lightweight API call to verify credentials and connectivity.
        """
        try:
            await asyncio.to_thread(stripe.Account.retrieve)
            logger.debug("Stripe: Health check passed")
            return True
        except stripe.StripeError as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False
