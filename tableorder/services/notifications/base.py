"""
Change Notifier Abstract Base Class

Defines the publish/subscribe contract the kitchen and waiter dashboards
rely on: every committed change to an order or order-item row is
broadcast to the observers subscribed at that moment.

Delivery guarantees:
    - Best-effort, at-least-once to current subscribers, no replay
    - Each subscriber has its own bounded queue and delivery task, so a
      slow observer never blocks the writer or other observers
    - Events for one subscriber arrive in publish order, which keeps
      updates to the same row in commit order

Version: 1.0.0
"""

import asyncio
import enum
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class ChangeKind(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass
class ChangeEvent:
    """
    One committed change.

    Attributes:
        table: "orders" or "order_items"
        kind: insert or update
        record: New row values (order events carry their items)
        order: Parent order row for order-item events
        committed_at: When the writer published the change
    """
    table: str
    kind: ChangeKind
    record: dict[str, Any]
    order: Optional[dict[str, Any]] = None
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "kind": ChangeKind(self.kind).value,
            "record": self.record,
            "order": self.order,
            "committed_at": self.committed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            kind=ChangeKind(data["kind"]),
            record=data["record"],
            order=data.get("order"),
            committed_at=datetime.fromisoformat(data["committed_at"]),
        )


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by ``subscribe``; owns one observer's delivery queue."""

    def __init__(self, notifier: "BaseChangeNotifier", callback: ChangeCallback, queue_size: int):
        self.subscription_id = uuid.uuid4().hex[:12]
        self.dropped = 0
        self._notifier = notifier
        self._callback = callback
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def offer(self, event: ChangeEvent) -> bool:
        """Queue an event without waiting; drop it when the backlog is full."""
        if not self._active:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Subscriber {self.subscription_id} is falling behind, "
                f"dropped {event.table} {ChangeKind(event.kind).value} "
                f"(total dropped: {self.dropped})"
            )
            return False
        self._ensure_worker()
        return True

    def _ensure_worker(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._deliver())

    async def _deliver(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                result = self._callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Subscriber {self.subscription_id} callback failed")
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until everything queued so far has been delivered."""
        await self._queue.join()

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._notifier._remove(self)
        if self._task is not None:
            self._task.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        logger.debug(f"Subscriber {self.subscription_id} detached")


class BaseChangeNotifier(ABC):
    """Abstract base class for change notifiers."""

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscriptions: dict[str, Subscription] = {}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the notifier backend name."""
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Broadcast a committed change. Must not wait on observers."""
        pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """
        Register an observer.

        Only events published after this call are delivered; observers
        load the current order list themselves before relying on deltas.
        """
        subscription = Subscription(self, callback, self.queue_size)
        self._subscriptions[subscription.subscription_id] = subscription
        logger.debug(f"Subscriber {subscription.subscription_id} attached")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.subscription_id, None)

    def _dispatch(self, event: ChangeEvent) -> int:
        """Fan an event out to local subscribers; returns how many accepted it."""
        return sum(1 for sub in list(self._subscriptions.values()) if sub.offer(event))

    async def join(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await subscription.join()

    async def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.unsubscribe()

    async def health_check(self) -> bool:
        return True
