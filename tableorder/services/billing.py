"""
Billing Service

Owns the only edges out of ``served``: an online payment moves the order
to ``paid`` and a cash close-out moves it to ``closed``. Both are terminal;
once set, item changes no longer recompute the order status.

Flow:
    1. Waiter requests the bill → hosted checkout session is created
    2. Customer pays → provider webhook → order becomes ``paid``
    (or the waiter closes the order after taking cash)

Version: 1.0.0
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.exceptions import Conflict, IllegalTransition
from tableorder.models import (
    Order,
    OrderStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    utcnow,
)
from tableorder.services.notifications import BaseChangeNotifier, ChangeEvent, ChangeKind
from tableorder.services.order_store import OrderStore
from tableorder.services.payment import (
    BasePaymentService,
    CheckoutLine,
    PaymentProviderError,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


class BillingService:
    """Bill generation and payment settlement for served orders."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: BaseChangeNotifier,
        payment_service: BasePaymentService,
    ):
        self.session = session
        self.store = OrderStore(session)
        self.notifier = notifier
        self.payment_service = payment_service

    async def generate_bill(self, order_id: str) -> str:
        """
        Create a checkout session for a served order.

        Returns:
            str: Checkout URL for the customer

        Raises:
            NotFound: Unknown order
            IllegalTransition: Order is not served yet, or already settled
            PaymentProviderError: The provider refused to create a session
        """
        try:
            order = await self.store.require_order(order_id)
            status = OrderStatus(order.status)
            if status != OrderStatus.SERVED:
                raise IllegalTransition(
                    f"Order {order_id} is '{status.value}', only served orders can be billed"
                )

            lines = [
                CheckoutLine(name=item.name, unit_amount_cents=item.price_cents, quantity=item.qty)
                for item in order.items
            ]
            result = await self.payment_service.create_checkout_session(
                order_id=order_id,
                amount_cents=order.total_cents,
                lines=lines,
            )
            if not result.success:
                raise PaymentProviderError(result)

            self.store.add_payment(
                Payment(
                    order_id=order_id,
                    amount_cents=order.total_cents,
                    provider=PaymentProvider.STRIPE,
                    provider_payment_id=result.session_id,
                    status=PaymentStatus.PENDING,
                )
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Bill generated for order {order_id}: {result.amount_cents} "
            f"via {self.payment_service.provider_name} ({result.session_id})"
        )
        return result.checkout_url

    async def complete_payment(
        self,
        order_id: str,
        provider_payment_id: Optional[str] = None,
    ) -> OrderStatus:
        """Settle an online payment: ``served → paid``."""

        async def record_payment(order: Order) -> None:
            payment = None
            if provider_payment_id:
                payment = await self.store.find_payment(provider_payment_id)
            if payment is None:
                pending = await self.store.pending_payments(order.order_id)
                payment = pending[0] if pending else None
            if payment is None:
                payment = Payment(
                    order_id=order.order_id,
                    amount_cents=order.total_cents,
                    provider=PaymentProvider.STRIPE,
                    provider_payment_id=provider_payment_id,
                )
                self.store.add_payment(payment)
            payment.status = PaymentStatus.COMPLETED
            payment.updated_at = utcnow()

        return await self._settle(order_id, OrderStatus.PAID, record_payment)

    async def close_order(self, order_id: str) -> OrderStatus:
        """Settle a cash payment: ``served → closed``."""

        async def record_cash(order: Order) -> None:
            self.store.add_payment(
                Payment(
                    order_id=order.order_id,
                    amount_cents=order.total_cents,
                    provider=PaymentProvider.CASH,
                    status=PaymentStatus.COMPLETED,
                )
            )

        return await self._settle(order_id, OrderStatus.CLOSED, record_cash)

    async def handle_webhook_event(self, event: dict[str, Any]) -> Optional[OrderStatus]:
        """
        React to a verified provider event.

        Returns:
            The order status after a completed checkout, otherwise None
        """
        event_type = event.get("type")
        session = event.get("data", {}).get("object", {})

        if event_type == CHECKOUT_COMPLETED:
            order_id = (session.get("metadata") or {}).get("order_id")
            if not order_id:
                logger.warning(f"Checkout {session.get('id')} completed without an order_id")
                return None
            if session.get("payment_status") == "unpaid":
                logger.info(f"Checkout {session.get('id')} completed but payment still pending")
                return None
            return await self.complete_payment(order_id, session.get("id"))

        if event_type == CHECKOUT_EXPIRED:
            try:
                payment = await self.store.find_payment(session.get("id", ""))
                if payment is not None and PaymentStatus(payment.status) == PaymentStatus.PENDING:
                    payment.status = PaymentStatus.FAILED
                    payment.updated_at = utcnow()
                    logger.info(f"Checkout {payment.provider_payment_id} expired for order {payment.order_id}")
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise
            return None

        logger.debug(f"Ignoring payment event {event_type}")
        return None

    async def _settle(self, order_id: str, target: OrderStatus, record_payment) -> OrderStatus:
        try:
            order = await self.store.lock_order(order_id)
            current = OrderStatus(order.status)
            if current == target:
                await self.session.commit()
                logger.info(f"Order {order_id} already {target.value}")
                return current
            if current != OrderStatus.SERVED:
                raise IllegalTransition(
                    f"Order {order_id} is '{current.value}', cannot become '{target.value}'"
                )

            if not await self.store.compare_and_set_order_status(order_id, current, target, utcnow()):
                raise Conflict(f"Order {order_id} was updated concurrently")
            await record_payment(order)
            order = await self.store.require_order(order_id)
            record = order.to_record(include_items=True)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Order {order_id}: {current.value} -> {target.value}")
        await self.notifier.publish(ChangeEvent(table="orders", kind=ChangeKind.UPDATE, record=record))
        return target
