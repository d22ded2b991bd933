"""
Status Transition Engine

Applies staff status changes to order items and keeps the order status in
step with them. Every write is a compare-and-set against the status read
in the same transaction, so two staff members acting on the same item
cannot silently overwrite each other: the loser gets ``Conflict`` and can
re-read and decide again.

Every change first locks the order row, so changes to sibling items of
one order are applied one at a time and the recomputed order status
always reflects all of them.

Re-applying the status an item already has is a successful no-op, which
makes retried network calls safe. The order status is still re-derived on
a re-apply and corrected if it has drifted from its items.

Version: 1.0.0
"""

import logging
from typing import Iterable, NamedTuple, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.exceptions import Conflict, IllegalTransition, NotFound
from tableorder.models import ItemStatus, Order, OrderItem, OrderStatus, utcnow
from tableorder.services.lifecycle import check_item_transition, resolve_order_status
from tableorder.services.notifications import BaseChangeNotifier, ChangeEvent, ChangeKind
from tableorder.services.order_store import OrderStore

logger = logging.getLogger(__name__)


class ItemChange(NamedTuple):
    order_item_id: str
    status: ItemStatus
    expected_status: Optional[ItemStatus] = None


class StatusTransitionEngine:
    """Persists item status changes and the recomputed order status."""

    def __init__(self, session: AsyncSession, notifier: BaseChangeNotifier):
        self.session = session
        self.store = OrderStore(session)
        self.notifier = notifier

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def apply_item_status(
        self,
        order_item_id: str,
        new_status: Union[ItemStatus, str],
        expected_status: Optional[Union[ItemStatus, str]] = None,
    ) -> OrderStatus:
        """
        Move one item to ``new_status``.

        Args:
            order_item_id: Item to update
            new_status: Target status
            expected_status: Status the caller last saw; a mismatch is a Conflict

        Returns:
            OrderStatus: The order's status after recomputation

        Raises:
            NotFound, IllegalTransition, Conflict
        """
        change = ItemChange(
            order_item_id,
            ItemStatus(new_status),
            ItemStatus(expected_status) if expected_status is not None else None,
        )
        try:
            item = await self.store.require_item(order_item_id)
            await self.store.lock_order(item.order_id)
            item = await self.store.require_item(order_item_id)
            advanced = await self._advance(item, change)
            order, repaired = await self._recompute(item.order_id)
            if not advanced and not repaired:
                await self.session.commit()
                return OrderStatus(order.status)

            item = await self.store.require_item(order_item_id)
            item_record = item.to_record()
            order_record = order.to_record()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.notifier.publish(
            ChangeEvent(
                table="order_items",
                kind=ChangeKind.UPDATE,
                record=item_record,
                order=order_record,
            )
        )
        return OrderStatus(order_record["status"])

    async def apply_kitchen_updates(
        self,
        order_id: str,
        updates: Sequence[ItemChange],
    ) -> OrderStatus:
        """Apply a batch of kitchen changes to one order, recomputing once."""
        return await self._apply_batch(order_id, updates)

    async def mark_served(self, order_id: str, order_item_ids: Iterable[str]) -> OrderStatus:
        """
        Mark the listed items served.

        Each item is individually idempotent. The order status is recomputed
        once for the whole batch and a single notification is sent.
        """
        changes = [ItemChange(item_id, ItemStatus.SERVED) for item_id in order_item_ids]
        return await self._apply_batch(order_id, changes)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _apply_batch(self, order_id: str, changes: Sequence[ItemChange]) -> OrderStatus:
        # Last change wins when an item is listed twice
        unique = {
            change.order_item_id: ItemChange(
                change.order_item_id,
                ItemStatus(change.status),
                ItemStatus(change.expected_status) if change.expected_status is not None else None,
            )
            for change in changes
        }
        try:
            await self.store.lock_order(order_id)
            items = await self.store.get_items(order_id, unique)
            missing = [item_id for item_id in unique if item_id not in items]
            if missing:
                raise NotFound(f"Items {', '.join(missing)} not found on order {order_id}")

            changed = 0
            for item_id, change in unique.items():
                if await self._advance(items[item_id], change):
                    changed += 1

            order, repaired = await self._recompute(order_id)
            if not changed and not repaired:
                await self.session.commit()
                logger.debug(f"Order {order_id}: batch of {len(unique)} items already applied")
                return OrderStatus(order.status)

            record = order.to_record(include_items=True)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Order {order_id}: {changed} items updated, order is {record['status']}")
        await self.notifier.publish(
            ChangeEvent(table="orders", kind=ChangeKind.UPDATE, record=record)
        )
        return OrderStatus(record["status"])

    async def _advance(self, item: OrderItem, change: ItemChange) -> bool:
        """Compare-and-set one item. Returns False for an idempotent re-apply."""
        current = ItemStatus(item.status)
        if change.status == current:
            return False
        if change.expected_status is not None and change.expected_status != current:
            raise Conflict(
                f"Item {item.order_item_id} is '{current.value}', "
                f"expected '{change.expected_status.value}'"
            )
        try:
            check_item_transition(current, change.status)
        except IllegalTransition:
            logger.warning(
                f"Rejected {current.value} -> {change.status.value} for item {item.order_item_id}"
            )
            raise

        if not await self.store.compare_and_set_item_status(
            item.order_item_id, current, change.status, utcnow()
        ):
            raise Conflict(f"Item {item.order_item_id} was updated concurrently")
        return True

    async def _recompute(self, order_id: str) -> Tuple[Order, bool]:
        """Re-derive the order status; True when the stored value had to change."""
        order = await self.store.require_order(order_id)
        current = OrderStatus(order.status)
        target = resolve_order_status(current, await self.store.item_statuses(order_id))
        if target == current:
            return order, False

        if not await self.store.compare_and_set_order_status(order_id, current, target, utcnow()):
            raise Conflict(f"Order {order_id} was updated concurrently")
        logger.info(f"Order {order_id}: {current.value} -> {target.value}")
        return await self.store.require_order(order_id), True
