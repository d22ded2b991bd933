"""
Order Lifecycle Rules

Pure functions for the item state machine and the derived order status.
Nothing here touches the database, so every combination can be tested
directly.

Item lifecycle (forward only, jumps allowed):

    pending → preparing → ready → served

Order status derivation, first matching rule wins:

    1. no items                           → pending
    2. every item served                  → served
    3. any item preparing                 → preparing
    4. every item pending                 → pending
    5. some item pending, rest ready/served → in_kitchen
    6. only ready/served, at least one ready → ready

``paid`` and ``closed`` are set by billing and are never recomputed.
"""

from typing import Iterable, Union

from tableorder.core.exceptions import IllegalTransition
from tableorder.models import ItemStatus, OrderStatus

ITEM_STATUS_SEQUENCE: tuple[ItemStatus, ...] = (
    ItemStatus.PENDING,
    ItemStatus.PREPARING,
    ItemStatus.READY,
    ItemStatus.SERVED,
)

TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CLOSED})

# Orders a table can still see as its current order
OPEN_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.IN_KITCHEN,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
)

_RANK = {status: rank for rank, status in enumerate(ITEM_STATUS_SEQUENCE)}


def item_rank(status: Union[ItemStatus, str]) -> int:
    return _RANK[ItemStatus(status)]


def check_item_transition(current: Union[ItemStatus, str], new: Union[ItemStatus, str]) -> bool:
    """
    Validate moving an item from ``current`` to ``new``.

    Returns:
        False when ``new`` equals ``current`` (idempotent re-apply),
        True when ``new`` is further along the lifecycle.

    Raises:
        IllegalTransition: ``new`` is earlier than ``current``
    """
    current, new = ItemStatus(current), ItemStatus(new)
    if new == current:
        return False
    if item_rank(new) < item_rank(current):
        raise IllegalTransition(
            f"Item cannot move from '{current.value}' back to '{new.value}'"
        )
    return True


def derive_order_status(item_statuses: Iterable[Union[ItemStatus, str]]) -> OrderStatus:
    """Compute the order status from its items' statuses."""
    statuses = [ItemStatus(s) for s in item_statuses]

    if not statuses:
        return OrderStatus.PENDING
    if all(s == ItemStatus.SERVED for s in statuses):
        return OrderStatus.SERVED
    if ItemStatus.PREPARING in statuses:
        return OrderStatus.PREPARING
    if all(s == ItemStatus.PENDING for s in statuses):
        return OrderStatus.PENDING
    if ItemStatus.PENDING in statuses:
        return OrderStatus.IN_KITCHEN
    return OrderStatus.READY


def is_terminal(status: Union[OrderStatus, str]) -> bool:
    return OrderStatus(status) in TERMINAL_ORDER_STATUSES


def resolve_order_status(
    current: Union[OrderStatus, str],
    item_statuses: Iterable[Union[ItemStatus, str]],
) -> OrderStatus:
    """Derived status, except that paid/closed orders keep their status."""
    if is_terminal(current):
        return OrderStatus(current)
    return derive_order_status(item_statuses)
