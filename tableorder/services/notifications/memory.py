"""
In-Memory Change Notifier

Single-process fan-out used in development and tests. Events never leave
the process, so every API worker only sees its own writes.

Version: 1.0.0
"""

import logging

from tableorder.services.notifications.base import (
    BaseChangeNotifier,
    ChangeEvent,
    ChangeKind,
)

logger = logging.getLogger(__name__)


class InMemoryChangeNotifier(BaseChangeNotifier):
    """Local notifier: publish hands the event straight to subscriber queues."""

    def __init__(self, queue_size: int = 1000):
        super().__init__(queue_size=queue_size)
        self.published = 0
        logger.info(f"InMemoryChangeNotifier initialized (queue_size={queue_size})")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def publish(self, event: ChangeEvent) -> None:
        self.published += 1
        delivered = self._dispatch(event)
        logger.debug(
            f"Published {event.table} {ChangeKind(event.kind).value} "
            f"to {delivered}/{self.subscriber_count} subscribers"
        )
