"""Item state machine and derived order status."""

from itertools import combinations_with_replacement

import pytest

from tableorder.core.exceptions import IllegalTransition
from tableorder.models import ItemStatus, OrderStatus
from tableorder.services.lifecycle import (
    ITEM_STATUS_SEQUENCE,
    check_item_transition,
    derive_order_status,
    resolve_order_status,
)

P, PR, R, S = ItemStatus.PENDING, ItemStatus.PREPARING, ItemStatus.READY, ItemStatus.SERVED


def _expected(statuses):
    if not statuses or all(s == P for s in statuses):
        return OrderStatus.PENDING
    if all(s == S for s in statuses):
        return OrderStatus.SERVED
    if PR in statuses:
        return OrderStatus.PREPARING
    if P in statuses:
        return OrderStatus.IN_KITCHEN
    return OrderStatus.READY


@pytest.mark.parametrize(
    "statuses",
    [combo for n in range(4) for combo in combinations_with_replacement(ITEM_STATUS_SEQUENCE, n)],
)
def test_derivation_covers_every_combination(statuses):
    assert derive_order_status(statuses) == _expected(statuses)


@pytest.mark.parametrize("statuses, expected", [
    ([], OrderStatus.PENDING),
    ([P, P], OrderStatus.PENDING),
    ([PR, R, S], OrderStatus.PREPARING),
    ([P, R], OrderStatus.IN_KITCHEN),
    ([P, S], OrderStatus.IN_KITCHEN),
    ([R, S], OrderStatus.READY),
    ([S, S, S], OrderStatus.SERVED),
])
def test_derivation_examples(statuses, expected):
    assert derive_order_status(statuses) == expected


def test_derivation_accepts_plain_strings():
    assert derive_order_status(["ready", "served"]) == OrderStatus.READY


def test_forward_moves_and_jumps_are_allowed():
    assert check_item_transition(P, PR) is True
    assert check_item_transition(PR, R) is True
    assert check_item_transition(R, S) is True
    assert check_item_transition(P, S) is True


def test_same_status_is_a_no_op():
    for status in ITEM_STATUS_SEQUENCE:
        assert check_item_transition(status, status) is False


@pytest.mark.parametrize("current, new", [(S, P), (R, PR), (PR, P), (S, R)])
def test_backward_moves_are_rejected(current, new):
    with pytest.raises(IllegalTransition):
        check_item_transition(current, new)


@pytest.mark.parametrize("terminal", [OrderStatus.PAID, OrderStatus.CLOSED])
def test_terminal_orders_keep_their_status(terminal):
    assert resolve_order_status(terminal, [S, S]) == terminal
    assert resolve_order_status(terminal, [P]) == terminal


def test_open_orders_are_recomputed():
    assert resolve_order_status(OrderStatus.PENDING, [PR]) == OrderStatus.PREPARING
