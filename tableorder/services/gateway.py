"""
Order Submission Gateway

Entry point for customer orders placed from a table. Validates the table's
admission token and the cart, prices every line from the menu catalog and
creates the order with all of its items in one transaction.

Prices and names sent by the client are never trusted: they are captured
from the catalog at submission time.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.config import get_settings
from tableorder.core.exceptions import InvalidItems, InvalidToken
from tableorder.models import ItemStatus, Order, OrderItem, OrderStatus, utcnow
from tableorder.services.notifications import BaseChangeNotifier, ChangeEvent, ChangeKind
from tableorder.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    """One requested line; ``name`` is informational only."""
    menu_item_id: str
    quantity: int
    name: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderGateway:
    """Validates and atomically creates customer orders."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: BaseChangeNotifier,
        max_item_quantity: Optional[int] = None,
    ):
        self.session = session
        self.store = OrderStore(session)
        self.notifier = notifier
        self.max_item_quantity = max_item_quantity or get_settings().max_item_quantity

    async def validate_token(self, table_id: str, token: str, now: Optional[datetime] = None) -> None:
        """
        Check the table admission token.

        Raises:
            InvalidToken: No token for the table, wrong token or expired
        """
        record = await self.store.get_table_token(table_id)
        now = now or datetime.now(timezone.utc)

        if record is None or record.token != token:
            logger.warning(f"Rejected order for table {table_id}: unknown token")
            raise InvalidToken()
        if _as_utc(record.expires_at) <= now:
            logger.warning(f"Rejected order for table {table_id}: token expired at {record.expires_at}")
            raise InvalidToken()

    def validate_lines(self, lines: Sequence[CartLine]) -> None:
        if not lines:
            raise InvalidItems("Cart is empty")
        for line in lines:
            if not 1 <= line.quantity <= self.max_item_quantity:
                raise InvalidItems(
                    f"Quantity for {line.menu_item_id} must be between 1 and {self.max_item_quantity}"
                )

    async def submit(self, table_id: str, token: str, lines: Sequence[CartLine]) -> str:
        """
        Create an order for a table.

        Args:
            table_id: Physical table identifier from the QR code
            token: Admission token from the QR code
            lines: Requested menu items and quantities

        Returns:
            str: The new order id

        Raises:
            InvalidToken: Token missing, wrong or expired
            InvalidItems: Empty cart, quantity out of range, unknown or
                unavailable menu item
        """
        await self.validate_token(table_id, token)
        self.validate_lines(lines)

        catalog = await self.store.get_menu_items(line.menu_item_id for line in lines)
        for line in lines:
            menu_item = catalog.get(line.menu_item_id)
            if menu_item is None:
                raise InvalidItems(f"Unknown menu item {line.menu_item_id}")
            if not menu_item.available:
                raise InvalidItems(f"{menu_item.name} is not available right now")

        now = utcnow()
        order = Order(table_id=table_id, status=OrderStatus.PENDING, created_at=now, updated_at=now)
        items = [
            OrderItem(
                menu_item_id=line.menu_item_id,
                name=catalog[line.menu_item_id].name,
                qty=line.quantity,
                price_cents=catalog[line.menu_item_id].price_cents,
                status=ItemStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            for line in lines
        ]

        try:
            self.store.add_order(order, items)
            await self.session.flush()
            record = order.to_record(include_items=True)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(f"Order creation for table {table_id} rolled back")
            raise

        logger.info(
            f"Order {order.order_id} created for table {table_id} "
            f"({len(items)} lines, {order.total_cents} total)"
        )

        await self.notifier.publish(ChangeEvent(table="orders", kind=ChangeKind.INSERT, record=record))
        return order.order_id
