"""Event fan-out to connected real-time clients.

Each subscriber owns a bounded queue and a pump task that drains it into the
transport. Publishing only enqueues, so a slow or dead subscriber can never
stall the bot manager: when a queue is full the event is dropped for that
subscriber alone.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from viber_relay.models import RealtimeEnvelope

SendCallable = Callable[[dict[str, Any]], Awaitable[None]]

DEFAULT_QUEUE_SIZE = 100


class Subscriber:
    """One connected real-time client.

    Attributes:
        subscriber_id: Unique id of the connection
        bot_ids: Bots whose events this client follows
        dropped: Number of events dropped because the queue was full
    """

    def __init__(
        self,
        subscriber_id: str,
        send: SendCallable,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.subscriber_id = subscriber_id
        self.bot_ids: set[str] = set()
        self.dropped = 0
        self._send = send
        self._queue: asyncio.Queue[RealtimeEnvelope] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None

    def follows(self, bot_id: str) -> bool:
        return bot_id in self.bot_ids

    def offer(self, envelope: RealtimeEnvelope) -> bool:
        """Enqueue without waiting. Returns False if the event was dropped."""
        try:
            self._queue.put_nowait(envelope)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class EventBroadcaster:
    """Registry of subscribers and fire-and-forget event publisher.

    Example:
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.register(websocket.send_json)
        broadcaster.subscribe(subscriber.subscriber_id, "support")
        broadcaster.publish("bot:status:update", "support", {"status": "active"})
        ...
        await broadcaster.unregister(subscriber.subscriber_id)
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}
        self._logger = logging.getLogger(__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        return self._subscribers.get(subscriber_id)

    def register(
        self, send: SendCallable, subscriber_id: str | None = None
    ) -> Subscriber:
        """Register a connection and start its pump task.

        Must be called from within a running event loop.

        Args:
            send: Coroutine function that writes one JSON frame to the client
            subscriber_id: Optional explicit id (generated if omitted)

        Returns:
            The new Subscriber
        """
        subscriber = Subscriber(
            subscriber_id or f"sub_{uuid.uuid4().hex[:12]}",
            send,
            queue_size=self._queue_size,
        )
        self._subscribers[subscriber.subscriber_id] = subscriber
        subscriber._task = asyncio.create_task(self._pump(subscriber))
        self._logger.info("Subscriber connected: %s", subscriber.subscriber_id)
        return subscriber

    async def unregister(self, subscriber_id: str) -> bool:
        """Remove a connection and stop its pump task.

        Returns:
            True if the subscriber was registered
        """
        subscriber = self._subscribers.pop(subscriber_id, None)
        if subscriber is None:
            return False

        task = subscriber._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._logger.info("Subscriber disconnected: %s", subscriber_id)
        return True

    def subscribe(self, subscriber_id: str, bot_id: str) -> bool:
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            return False
        subscriber.bot_ids.add(bot_id)
        return True

    def unsubscribe(self, subscriber_id: str, bot_id: str) -> bool:
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            return False
        subscriber.bot_ids.discard(bot_id)
        return True

    def publish(self, event: str, bot_id: str, data: dict[str, Any]) -> int:
        """Fan an event out to every subscriber following ``bot_id``.

        Never awaits. ``botId`` is added to the payload if absent.

        Returns:
            Number of subscribers the event was queued for
        """
        envelope = RealtimeEnvelope(event=event, data={"botId": bot_id, **data})
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if not subscriber.follows(bot_id):
                continue
            if subscriber.offer(envelope):
                delivered += 1
            else:
                self._logger.warning(
                    "Dropping %s for slow subscriber %s (queue full)",
                    event,
                    subscriber.subscriber_id,
                )
        return delivered

    def send_to(self, subscriber_id: str, event: str, data: dict[str, Any]) -> bool:
        """Queue a direct reply to one subscriber, ordered with its broadcasts."""
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            return False
        return subscriber.offer(RealtimeEnvelope(event=event, data=data))

    async def close(self) -> None:
        """Unregister every subscriber."""
        for subscriber_id in list(self._subscribers):
            await self.unregister(subscriber_id)

    async def _pump(self, subscriber: Subscriber) -> None:
        """Drain a subscriber's queue into its transport until it fails."""
        while True:
            envelope = await subscriber._queue.get()
            try:
                await subscriber._send(envelope.model_dump(mode="json"))
            except Exception as e:
                self._logger.warning(
                    "Subscriber %s send failed, removing: %s",
                    subscriber.subscriber_id,
                    e,
                )
                self._subscribers.pop(subscriber.subscriber_id, None)
                return
