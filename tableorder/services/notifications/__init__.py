"""
Change Notifier Factory

Returns the in-memory or Redis change notifier based on ENV_MODE.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from tableorder.core.config import get_settings
from tableorder.services.notifications.base import (
    BaseChangeNotifier,
    ChangeCallback,
    ChangeEvent,
    ChangeKind,
    Subscription,
)
from tableorder.services.notifications.memory import InMemoryChangeNotifier
from tableorder.services.notifications.redis_pubsub import RedisChangeNotifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_notifier() -> BaseChangeNotifier:
    """Get the configured change notifier."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Change Notifier: Using InMemoryChangeNotifier (development mode)")
        return InMemoryChangeNotifier(queue_size=settings.notifier_queue_size)
    else:
        logger.info(f"Change Notifier: Using RedisChangeNotifier ({settings.env_mode.value} mode)")
        return RedisChangeNotifier()


def reset_change_notifier() -> None:
    """Clear the cached notifier instance."""
    get_change_notifier.cache_clear()


__all__ = [
    "get_change_notifier",
    "reset_change_notifier",
    "BaseChangeNotifier",
    "ChangeCallback",
    "ChangeEvent",
    "ChangeKind",
    "Subscription",
    "InMemoryChangeNotifier",
    "RedisChangeNotifier",
]
