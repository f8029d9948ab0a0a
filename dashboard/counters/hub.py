"""Registry of live subscribers and fan-out of counter messages.

Every method that touches the registry is synchronous and runs on the event
loop, so opening a subscriber (snapshot + INIT + register) and publishing an
increment can never interleave. Broadcast cost is O(subscribers); that is fine
for a dashboard with up to a few thousand viewers and is not meant to go past it.
"""

from __future__ import annotations

import asyncio
import secrets
from enum import StrEnum
from typing import AsyncGenerator, Callable

from dashboard.counters.schemas import CounterState, InitMessage, UpdateMessage
from dashboard.counters.store import CounterUpdate
from dashboard.lib.logger import get_logger
from dashboard.lib.metrics import OPS_METRICS, MetricsRegistry

logger = get_logger(__name__)

Message = dict[str, object]


class SubscriberState(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Subscriber:
    """One live viewer with its own bounded outbound queue."""

    def __init__(self, queue_size: int) -> None:
        self.id = secrets.token_hex(6)
        self.state = SubscriberState.CONNECTING
        self.queue: "asyncio.Queue[Message | None]" = asyncio.Queue(maxsize=queue_size)

    @property
    def is_open(self) -> bool:
        return self.state is SubscriberState.OPEN

    def offer(self, message: Message) -> bool:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def next_message(self) -> Message | None:
        """Wait for the next outbound message; ``None`` once the subscriber is closed."""

        if self.state is SubscriberState.CLOSED and self.queue.empty():
            return None
        return await self.queue.get()

    def _shutdown(self) -> None:
        self.state = SubscriberState.CLOSED
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)


class SubscriberHub:
    """Track open subscribers and push INIT/UPDATE messages to them."""

    def __init__(
        self,
        snapshot: Callable[[], CounterState],
        queue_size: int = 256,
        ops: MetricsRegistry = OPS_METRICS,
    ) -> None:
        self._snapshot = snapshot
        self._queue_size = queue_size
        self._ops = ops
        self._subscribers: dict[str, Subscriber] = {}

    @property
    def open_count(self) -> int:
        return len(self._subscribers)

    def open(self) -> Subscriber:
        """Register a subscriber and queue an INIT with the state at this instant."""

        subscriber = Subscriber(self._queue_size)
        subscriber.offer(InitMessage.from_state(self._snapshot()).json_payload())
        subscriber.state = SubscriberState.OPEN
        self._subscribers[subscriber.id] = subscriber
        self._ops.increment("subscriber.connected")
        logger.info("subscriber_opened", extra={"subscriber_id": subscriber.id, "open": self.open_count})
        return subscriber

    def close(self, subscriber: Subscriber) -> None:
        """Remove a subscriber; safe to call repeatedly and during a broadcast."""

        if subscriber.state is SubscriberState.CLOSED:
            return
        self._subscribers.pop(subscriber.id, None)
        subscriber._shutdown()
        logger.info("subscriber_closed", extra={"subscriber_id": subscriber.id, "open": self.open_count})

    def close_all(self) -> None:
        for subscriber in list(self._subscribers.values()):
            self.close(subscriber)

    def publish_update(self, update: CounterUpdate) -> int:
        message = UpdateMessage(metric=update.metric, value=update.value).json_payload()
        return self._broadcast(message)

    def publish_init(self, state: CounterState) -> int:
        return self._broadcast(InitMessage.from_state(state).json_payload())

    def _broadcast(self, message: Message) -> int:
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if not subscriber.is_open:
                continue
            if subscriber.offer(message):
                delivered += 1
                continue
            # Full queue: disconnect rather than skip, so no stream ever has a gap.
            self._ops.increment("subscriber.dropped")
            logger.warning("subscriber_queue_full", extra={"subscriber_id": subscriber.id})
            self.close(subscriber)
        self._ops.increment("broadcast.sent", delivered)
        return delivered

    async def listen(self) -> AsyncGenerator[Message, None]:
        """Yield this subscriber's messages, starting with INIT, until it is closed."""

        subscriber = self.open()
        try:
            while True:
                message = await subscriber.next_message()
                if message is None:
                    return
                yield message
        finally:
            self.close(subscriber)
