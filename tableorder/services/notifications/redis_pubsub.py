"""
Redis Pub/Sub Change Notifier

Production notifier shared by every API worker. Writers publish JSON
events to one Redis channel; each process runs a single listener that
feeds the received events into its local subscriber queues, so a
WebSocket connected to any worker sees changes made through any other.

Requirements:
    - REDIS_URL must point at a reachable Redis server
    - A dropped connection is retried with backoff; missed events are not replayed

Version: 1.0.0
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from tableorder.core.config import get_settings
from tableorder.services.notifications.base import (
    BaseChangeNotifier,
    ChangeCallback,
    ChangeEvent,
    ChangeKind,
    Subscription,
)

logger = logging.getLogger(__name__)


class RedisChangeNotifier(BaseChangeNotifier):
    """Change notifier backed by a Redis pub/sub channel."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        channel: Optional[str] = None,
        queue_size: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
    ):
        settings = get_settings()
        super().__init__(queue_size=queue_size or settings.notifier_queue_size)
        self.channel = channel or settings.notify_channel
        self.reconnect_delay = (
            settings.notify_reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self.reconnect_max = settings.notify_reconnect_max_seconds
        self._redis = aioredis.from_url(redis_url or settings.redis_url, decode_responses=True)
        self._listener: Optional[asyncio.Task] = None
        logger.info(f"RedisChangeNotifier initialized (channel={self.channel})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def publish(self, event: ChangeEvent) -> None:
        """
        Send the event to Redis.

        The database write has already committed, so a Redis outage is
        logged rather than raised back to the writer.
        """
        try:
            receivers = await self._redis.publish(self.channel, json.dumps(event.to_dict()))
            logger.debug(
                f"Published {event.table} {ChangeKind(event.kind).value} "
                f"to {receivers} listeners"
            )
        except RedisError as e:
            logger.error(f"Failed to publish change event to Redis: {e}")

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        subscription = super().subscribe(callback)
        self._ensure_listener()
        return subscription

    def _ensure_listener(self) -> None:
        if self._listener is None or self._listener.done():
            self._listener = asyncio.get_running_loop().create_task(self._listen())

    async def _listen(self) -> None:
        """
        Feed channel messages to local subscribers until cancelled.

        A lost Redis connection is logged and the channel is resubscribed
        after a doubling delay; events published while disconnected are not
        replayed.
        """
        failures = 0
        while True:
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                logger.info(f"Listening for change events on '{self.channel}'")
                failures = 0
                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    try:
                        event = ChangeEvent.from_dict(json.loads(message["data"]))
                    except (ValueError, KeyError) as e:
                        logger.warning(f"Ignoring malformed change event: {e}")
                        continue
                    self._dispatch(event)
                logger.warning(f"Change stream on '{self.channel}' ended")
            except RedisError as e:
                logger.warning(f"Change listener lost Redis: {e}")
            finally:
                await self._close_pubsub(pubsub)

            delay = min(self.reconnect_delay * 2 ** failures, self.reconnect_max)
            failures += 1
            logger.info(f"Resubscribing to '{self.channel}' in {delay:.1f}s")
            await asyncio.sleep(delay)

    async def _close_pubsub(self, pubsub) -> None:
        try:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Ignoring error while closing pub/sub connection: {e}")

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except (asyncio.CancelledError, RedisError):
                pass
        await self._redis.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
