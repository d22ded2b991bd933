"""
Payment Service Factory

Provides a single entry point for obtaining a payment service instance.
The factory pattern allows billing to remain agnostic about which
implementation is being used.

Usage:
    from tableorder.services.payment import get_payment_service

    # Returns MockPaymentService or StripePaymentService based on ENV_MODE
    payment_service = get_payment_service()

    result = await payment_service.create_checkout_session(order_id, 31000, lines)

Environment Switching:
    - ENV_MODE=development → MockPaymentService (no API calls)
    - ENV_MODE=staging → StripePaymentService (test keys)
    - ENV_MODE=production → StripePaymentService (live keys)

Version: 1.0.0
"""

import logging
from functools import lru_cache

from tableorder.core.config import get_settings
from tableorder.services.payment.base import (
    BasePaymentService,
    CheckoutLine,
    CheckoutResult,
    PaymentProviderError,
)
from tableorder.services.payment.mock import MockPaymentService
from tableorder.services.payment.stripe import StripePaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """
    Get the configured payment service instance.

    The instance is cached (singleton pattern) so every request shares
    one configured provider.

    Raises:
        ValueError: If production mode but Stripe key not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Payment Service: Using MockPaymentService (development mode)")
        return MockPaymentService()
    else:
        logger.info(
            f"Payment Service: Using StripePaymentService "
            f"({settings.env_mode.value} mode)"
        )
        return StripePaymentService()


def reset_payment_service() -> None:
    """
    Clear the cached payment service instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_payment_service.cache_clear()
    logger.debug("Payment service cache cleared")


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentService",
    "CheckoutLine",
    "CheckoutResult",
    "PaymentProviderError",
    "MockPaymentService",
    "StripePaymentService",
]
