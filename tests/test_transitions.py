"""Item status changes, order recomputation and optimistic concurrency."""

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from tableorder.core.exceptions import Conflict, IllegalTransition, NotFound
from tableorder.models import ItemStatus, OrderStatus
from tableorder.services import ItemChange, OrderStore, StatusTransitionEngine


async def _order(session_factory, order_id):
    async with session_factory() as session:
        return await OrderStore(session).require_order(order_id)


async def test_single_item_walks_the_lifecycle(place_order, item_ids, engine_service):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)

    assert await engine_service.apply_item_status(item_id, "preparing") == OrderStatus.PREPARING
    assert await engine_service.apply_item_status(item_id, "ready") == OrderStatus.READY
    assert await engine_service.apply_item_status(item_id, "served") == OrderStatus.SERVED


async def test_mixed_items_derive_in_kitchen_then_ready(place_order, item_ids, engine_service):
    order_id = await place_order(("MENU001", 1), ("MENU009", 1))
    dosa, lassi = await item_ids(order_id)

    assert await engine_service.apply_item_status(dosa, ItemStatus.READY) == OrderStatus.IN_KITCHEN
    assert await engine_service.apply_item_status(lassi, ItemStatus.SERVED) == OrderStatus.READY


async def test_reapplying_same_status_changes_nothing(
    place_order, item_ids, engine_service, notifier, events, session_factory
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)
    await engine_service.apply_item_status(item_id, "preparing")
    await notifier.join()
    before = await _order(session_factory, order_id)
    seen = len(events)

    assert await engine_service.apply_item_status(item_id, "preparing") == OrderStatus.PREPARING
    await notifier.join()

    after = await _order(session_factory, order_id)
    assert after.status == OrderStatus.PREPARING
    assert after.items[0].updated_at == before.items[0].updated_at
    assert len(events) == seen


async def test_regression_is_illegal_and_leaves_state_alone(
    place_order, item_ids, engine_service, session_factory
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)
    await engine_service.apply_item_status(item_id, "served")

    with pytest.raises(IllegalTransition):
        await engine_service.apply_item_status(item_id, "pending")

    order = await _order(session_factory, order_id)
    assert order.status == OrderStatus.SERVED
    assert order.items[0].status == ItemStatus.SERVED


async def test_unknown_item_is_not_found(engine_service):
    with pytest.raises(NotFound):
        await engine_service.apply_item_status("no-such-item", "ready")


async def test_item_event_carries_item_and_parent_order(
    place_order, item_ids, engine_service, notifier, events
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)
    await notifier.join()
    events.clear()

    await engine_service.apply_item_status(item_id, "preparing")
    await notifier.join()

    assert len(events) == 1
    change = events[0]
    assert change.table == "order_items"
    assert change.kind == "update"
    assert change.record["order_item_id"] == item_id
    assert change.record["status"] == "preparing"
    assert change.order["order_id"] == order_id
    assert change.order["status"] == "preparing"


async def test_stale_expected_status_conflicts(place_order, item_ids, session_factory, notifier):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)

    async with session_factory() as session:
        await StatusTransitionEngine(session, notifier).apply_item_status(item_id, "preparing")

    # Two staff devices both saw "preparing"; the first write wins
    async with session_factory() as session:
        await StatusTransitionEngine(session, notifier).apply_item_status(
            item_id, "ready", expected_status="preparing"
        )
    async with session_factory() as session:
        with pytest.raises(Conflict):
            await StatusTransitionEngine(session, notifier).apply_item_status(
                item_id, "served", expected_status="preparing"
            )

    order = await _order(session_factory, order_id)
    assert order.items[0].status == ItemStatus.READY
    assert order.status == OrderStatus.READY


async def test_lost_compare_and_set_raises_conflict(
    place_order, item_ids, engine_service, monkeypatch, session_factory
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)

    async def lose_race(*args, **kwargs):
        return False

    monkeypatch.setattr(engine_service.store, "compare_and_set_item_status", lose_race)
    with pytest.raises(Conflict):
        await engine_service.apply_item_status(item_id, "preparing")

    order = await _order(session_factory, order_id)
    assert order.items[0].status == ItemStatus.PENDING


async def test_lost_order_compare_and_set_rolls_back_item(
    place_order, item_ids, engine_service, monkeypatch, session_factory
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)

    async def lose_race(*args, **kwargs):
        return False

    monkeypatch.setattr(engine_service.store, "compare_and_set_order_status", lose_race)
    with pytest.raises(Conflict):
        await engine_service.apply_item_status(item_id, "preparing")

    order = await _order(session_factory, order_id)
    assert order.status == OrderStatus.PENDING
    assert order.items[0].status == ItemStatus.PENDING


async def test_store_compare_and_set_checks_expected_status(place_order, item_ids, session):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)
    store = OrderStore(session)

    assert not await store.compare_and_set_item_status(item_id, ItemStatus.READY, ItemStatus.SERVED)
    assert await store.compare_and_set_item_status(item_id, ItemStatus.PENDING, ItemStatus.READY)
    assert not await store.compare_and_set_order_status(order_id, OrderStatus.READY, OrderStatus.SERVED)
    assert await store.compare_and_set_order_status(order_id, OrderStatus.PENDING, OrderStatus.IN_KITCHEN)
    await session.commit()


async def test_kitchen_batch_recomputes_once_and_notifies_once(
    place_order, item_ids, engine_service, notifier, events
):
    order_id = await place_order(("MENU001", 1), ("MENU002", 1), ("MENU003", 1))
    ids = await item_ids(order_id)
    await notifier.join()
    events.clear()

    status = await engine_service.apply_kitchen_updates(
        order_id, [ItemChange(i, ItemStatus.PREPARING) for i in ids]
    )
    await notifier.join()

    assert status == OrderStatus.PREPARING
    assert len(events) == 1
    assert events[0].table == "orders"
    assert [i["status"] for i in events[0].record["items"]] == ["preparing"] * 3


async def test_kitchen_batch_with_foreign_item_changes_nothing(
    place_order, item_ids, engine_service, session_factory
):
    first = await place_order()
    second = await place_order()
    [own] = await item_ids(first)
    [foreign] = await item_ids(second)

    with pytest.raises(NotFound):
        await engine_service.apply_kitchen_updates(
            first,
            [ItemChange(own, ItemStatus.READY), ItemChange(foreign, ItemStatus.READY)],
        )

    order = await _order(session_factory, first)
    assert order.items[0].status == ItemStatus.PENDING


async def test_mark_served_is_idempotent(place_order, item_ids, engine_service, notifier, events):
    order_id = await place_order(("MENU001", 1), ("MENU010", 2))
    ids = await item_ids(order_id)

    assert await engine_service.mark_served(order_id, ids) == OrderStatus.SERVED
    await notifier.join()
    seen = len(events)

    assert await engine_service.mark_served(order_id, ids) == OrderStatus.SERVED
    await notifier.join()
    assert len(events) == seen


async def test_partial_serve_keeps_order_open(place_order, item_ids, engine_service):
    order_id = await place_order(("MENU001", 1), ("MENU010", 1))
    dosa, coffee = await item_ids(order_id)

    await engine_service.apply_item_status(dosa, "ready")
    assert await engine_service.mark_served(order_id, [coffee]) == OrderStatus.READY


async def test_item_changes_after_payment_keep_terminal_status(
    place_order, item_ids, engine_service, billing, session_factory
):
    order_id = await place_order(("MENU001", 1), ("MENU002", 1))
    ids = await item_ids(order_id)
    await engine_service.mark_served(order_id, ids)
    await billing.close_order(order_id)

    # Items are already served; re-serving is a no-op and the order stays closed
    assert await engine_service.mark_served(order_id, ids) == OrderStatus.CLOSED
    order = await _order(session_factory, order_id)
    assert order.status == OrderStatus.CLOSED


async def test_item_changes_lock_the_order_before_writing(
    place_order, item_ids, engine_service, session
):
    order_id = await place_order()
    [item_id] = await item_ids(order_id)
    statements = []

    @event.listens_for(session.sync_session, "do_orm_execute")
    def record(state):
        statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

    await engine_service.apply_item_status(item_id, "preparing")

    locks = [i for i, sql in enumerate(statements) if "FOR UPDATE" in sql and "FROM orders" in sql]
    writes = [i for i, sql in enumerate(statements) if sql.startswith("UPDATE order_items")]
    assert locks and writes
    assert locks[0] < writes[0]


async def test_reapply_repairs_order_status_left_behind_by_items(
    place_order, item_ids, engine_service, billing, notifier, events, session_factory
):
    order_id = await place_order(("MENU001", 1), ("MENU002", 1))
    ids = await item_ids(order_id)
    await engine_service.apply_kitchen_updates(
        order_id, [ItemChange(i, ItemStatus.PREPARING) for i in ids]
    )

    # Both items served in separate transactions that never touched the order row
    async with session_factory() as other:
        store = OrderStore(other)
        for item_id in ids:
            assert await store.compare_and_set_item_status(item_id, ItemStatus.PREPARING, ItemStatus.SERVED)
        await other.commit()
    assert (await _order(session_factory, order_id)).status == OrderStatus.PREPARING
    await notifier.join()
    events.clear()

    assert await engine_service.mark_served(order_id, ids) == OrderStatus.SERVED
    await notifier.join()

    assert len(events) == 1
    assert events[0].record["status"] == "served"
    assert await billing.generate_bill(order_id)
