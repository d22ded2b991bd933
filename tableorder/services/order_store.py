"""
Order Store

Data access for menus, table tokens, orders and order items on top of an
async SQLAlchemy session. Status columns are only ever written through the
compare-and-set helpers: each one updates a row only while it still holds
the status the caller last read, and reports whether it did.

The store never commits; transaction boundaries belong to the services.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.exceptions import NotFound
from tableorder.models import (
    ItemStatus,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    TableToken,
    utcnow,
)
from tableorder.services.lifecycle import OPEN_ORDER_STATUSES

logger = logging.getLogger(__name__)


class OrderStore:
    """Repository over one ``AsyncSession``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # MENU & TOKENS
    # =========================================================================

    async def get_menu_items(self, menu_item_ids: Iterable[str]) -> dict[str, MenuItem]:
        ids = set(menu_item_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(MenuItem).where(MenuItem.menu_item_id.in_(ids))
        )
        return {item.menu_item_id: item for item in result.scalars()}

    async def list_menu(self, available_only: bool = True) -> Sequence[MenuItem]:
        query = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if available_only:
            query = query.where(MenuItem.available.is_(True))
        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_table_token(self, table_id: str) -> Optional[TableToken]:
        return await self.session.get(TableToken, table_id)

    # =========================================================================
    # ORDERS
    # =========================================================================

    def add_order(self, order: Order, items: Sequence[OrderItem]) -> None:
        order.items = list(items)
        self.session.add(order)

    async def get_order(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_order(self, order_id: str) -> Order:
        order = await self.get_order(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    async def lock_order(self, order_id: str) -> Order:
        """
        Read the order with ``SELECT ... FOR UPDATE``.

        Held until the transaction ends, so status changes on one order run
        one after another and each recompute sees its siblings' committed
        item statuses. Dialects without row locks (SQLite) omit the clause
        and already serialize writers.
        """
        result = await self.session.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    async def list_orders(
        self,
        statuses: Optional[Sequence[OrderStatus]] = None,
        limit: int = 100,
    ) -> Sequence[Order]:
        query = select(Order).order_by(Order.created_at.desc()).limit(limit)
        if statuses:
            query = query.where(Order.status.in_(list(statuses)))
        result = await self.session.execute(query)
        return result.scalars().all()

    async def active_order_for_table(self, table_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.table_id == table_id, Order.status.in_(OPEN_ORDER_STATUSES))
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_order_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        now: Optional[datetime] = None,
    ) -> bool:
        result = await self.session.execute(
            update(Order)
            .where(Order.order_id == order_id, Order.status == expected)
            .values(status=new, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # =========================================================================
    # ORDER ITEMS
    # =========================================================================

    async def get_item(self, order_item_id: str) -> Optional[OrderItem]:
        result = await self.session.execute(
            select(OrderItem)
            .where(OrderItem.order_item_id == order_item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_item(self, order_item_id: str) -> OrderItem:
        item = await self.get_item(order_item_id)
        if item is None:
            raise NotFound(f"Order item {order_item_id} not found")
        return item

    async def get_items(self, order_id: str, order_item_ids: Iterable[str]) -> dict[str, OrderItem]:
        """Items of ``order_id`` keyed by id; ids from other orders are left out."""
        result = await self.session.execute(
            select(OrderItem)
            .where(
                OrderItem.order_id == order_id,
                OrderItem.order_item_id.in_(set(order_item_ids)),
            )
            .execution_options(populate_existing=True)
        )
        return {item.order_item_id: item for item in result.scalars()}

    async def item_statuses(self, order_id: str) -> list[ItemStatus]:
        result = await self.session.execute(
            select(OrderItem.status).where(OrderItem.order_id == order_id)
        )
        return [ItemStatus(status) for status in result.scalars()]

    async def compare_and_set_item_status(
        self,
        order_item_id: str,
        expected: ItemStatus,
        new: ItemStatus,
        now: Optional[datetime] = None,
    ) -> bool:
        result = await self.session.execute(
            update(OrderItem)
            .where(OrderItem.order_item_id == order_item_id, OrderItem.status == expected)
            .values(status=new, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def add_payment(self, payment: Payment) -> None:
        self.session.add(payment)

    async def pending_payments(self, order_id: str) -> Sequence[Payment]:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.order_id == order_id, Payment.status == PaymentStatus.PENDING)
            .order_by(Payment.created_at.desc())
        )
        return result.scalars().all()

    async def find_payment(self, provider_payment_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.provider_payment_id == provider_payment_id)
        )
        return result.scalars().first()
